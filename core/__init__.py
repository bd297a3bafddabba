"""core/ -- Kernel layer: configuration and the error taxonomy. Imports nothing from other layers."""
