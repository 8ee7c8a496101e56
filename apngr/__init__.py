"""
apngr converts GIF animations and still images into animated PNGs, and inspects or extracts APNG frames.

Based on the GIF89a spec and the APNG spec, currently hosted here:

https://www.w3.org/Graphics/GIF/spec-gif89a.txt
https://wiki.mozilla.org/APNG_Specification
"""

from .constants import *
from .errors import *
from .frame import *
from .palette import *
from .animation import *
from .naming import *
from .config import *
from .gif import *
from .apng import *
from .builder import *
from .descriptor import *

__version__ = "0.2.0"
