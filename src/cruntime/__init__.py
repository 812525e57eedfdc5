"""Container runtime adapters for preparing Kubernetes nodes"""

__version__ = "0.1.0"
