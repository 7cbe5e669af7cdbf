"""Control Tower: serial transport and control surface for 3D printers."""

__version__ = "0.1.0"
