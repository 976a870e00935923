"""
mw_bulk_client.conf - per-Wiki configuration.

Every Wiki owns one Conf. Pass keyword overrides to the Wiki constructor:

.. code-block:: python

    wp = mw.Wiki('https://en.wikipedia.org/w/api.php',
                 max_retries=3, ratelimit_sleep=30)
"""
import copy
import platform

__all__ = ['Conf']

class Conf:
    """Configuration values shared by every component of one Wiki."""

    #: Number of items per request asked for when a query says "max".
    max_result_limit = 500

    #: Maximum number of titles in one multi-title request.
    group_query_max = 50

    #: Size of one upload chunk, in bytes.
    chunk_size = 1024 * 1024 * 4

    #: Attempts per mutating action (and per upload chunk).
    max_retries = 5

    #: Seconds to sleep after the server says we are rate limited.
    ratelimit_sleep = 10

    #: Default worker pool size for ConcurrentTaskRunner.
    max_parallel = 20

    #: (connect, read) timeout handed to requests.
    timeout = (10, 120)

    #: Mark edits with the bot flag.
    is_bot = False

    #: Log raw API replies at DEBUG level.
    debug = False

    def __init__(self, **overrides):
        """Initialize with class defaults, then apply ``overrides``.

        Unknown keys raise TypeError so typos don't go unnoticed.
        """
        self.user_agent = 'mw_bulk_client/{ver} ({osname} {osver})'.format(
            ver=_version(), osname=platform.system(),
            osver=platform.release()
        )
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise TypeError('Unknown configuration key: ' + repr(key))
            setattr(self, key, value)

    def __repr__(self):
        """Represent the Conf."""
        return '<Conf {}>'.format(self.__dict__)

    __str__ = __repr__

    def copy(self):
        """Return an independent copy, used for sibling Wikis."""
        return copy.copy(self)

def _version():
    """Avoid a circular import at module load time."""
    from . import __version__
    return __version__
