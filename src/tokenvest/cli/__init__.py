"""tokenvest command line interface."""
