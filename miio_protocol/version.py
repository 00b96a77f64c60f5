# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Package miio_protocol provides a client for the miIO UDP device control protocol
"""

# Keep in step with pyproject.toml
__version__ =  "1.0.0"

__all__ = [ '__version__' ]
