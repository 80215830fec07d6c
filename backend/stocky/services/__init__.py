"""Domain services that sit between the routes and the provider clients."""
