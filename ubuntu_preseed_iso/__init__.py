"""Ubuntu Preseed ISO - unattended Ubuntu installation media builder.

This package downloads and verifies stock Ubuntu ISO images, injects a
preseed file and automated-install kernel parameters into their boot menus,
and repackages them into new bootable ISO images.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
