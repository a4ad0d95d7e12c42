"""holograph — relationship resolution and consistent mutations over a
small Star Wars entity store."""

__version__ = "0.1.0"
