"""reviewloop: infinite spaced-repetition review scheduler."""

from reviewloop.consts import VERSION

__version__ = VERSION
