# Keep this TINY; the pipeline itself lives in .lib
from . import lib  # so: from modules.volunteer_watch import lib
from .main import run  # so: from modules.volunteer_watch import run

__all__ = ["lib", "run"]
