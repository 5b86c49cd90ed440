"""HTTP layer: dependencies, helpers and versioned routers."""
