"""Walk map renderer.

Turns a single recorded walk into an interactive Leaflet map with
data-driven color gradients for elevation, heart rate, speed, cadence and
temperature, and converts FIT activity files into the map's JSON dataset.
"""

__version__ = "0.1.0"

__author__ = "walkmap contributors"
__license__ = "Apache-2.0"

__all__ = ["__version__"]
