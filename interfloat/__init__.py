from .interfloat import *
from .interfloat import __all__
