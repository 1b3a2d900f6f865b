"""Infrastructure adapters: loaders, assets, security, HTTP, observability."""
