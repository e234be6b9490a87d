"""Remote management of stable-diffusion web UI GPU servers over SSH."""

__version__ = "0.1.0"
