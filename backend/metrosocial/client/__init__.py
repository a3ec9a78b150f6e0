"""Feed client: HTTP transport, push channel and local reconciliation."""
