"""Tools the model can call, plus the registry that dispatches them."""
