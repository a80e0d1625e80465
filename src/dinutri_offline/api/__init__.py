"""HTTP surface of the gateway: control endpoints and the proxy route."""
