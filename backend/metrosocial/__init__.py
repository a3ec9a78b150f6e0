"""MetroSocial proximity core: nearby discovery and a real-time post feed."""
