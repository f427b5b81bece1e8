"""zxpman: discover, install and remove Adobe CEP extensions."""

__version__ = "0.3.0"
