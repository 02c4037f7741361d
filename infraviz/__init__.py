"""Infrastructure Visualizer: Pulumi preview events to positioned, cost-annotated graphs."""

__version__ = "1.0.0"
