"""
mw_bulk_client.excs - Exceptions and result classification for API
requests.

``Wiki.request`` raises a WikiError subclass named after the API error
code. To catch a permission error:

.. code-block:: python

    try:
        wp.post_request(action='edit', title='Main Page', text='hi',
                        token=wp.csrf_token)
    except mw.WikiError.protectedpage as exc:
        print('Page is protected:', exc)

The bulk layers (queries, batches, uploads, tasks) never let ordinary API
errors escape. Mutating actions report an ``ActionResult`` instead:

.. code-block:: python

    result = ActionResult.wrap(reply, 'edit')
    if result is ActionResult.RATELIMITED:
        time.sleep(10)
"""
import enum
import logging

__all__ = [
    'WikiError',
    'WikiWarning',
    'ActionResult',
]

log = logging.getLogger(__name__)

class _MetaGetattr(type):
    """Metaclass to provide __getattr__ on a class."""
    def __getattr__(cls, name):
        if name.startswith('__'):
            raise AttributeError(name)
        setattr(cls, name, type(name, (cls,), {}))
        return getattr(cls, name)

#pylint: disable=too-few-public-methods
class WikiError(Exception, metaclass=_MetaGetattr):
    """An error returned by the wiki's API. Raised by Wiki.request."""
    @property
    def code(self):
        """Return the API error code."""
        return type(self).__name__

class WikiWarning(UserWarning, metaclass=_MetaGetattr):
    """The API sent a warning in the response."""
    pass

#: Error codes meaning the user may not touch the page at all.
PROTECTED_CODES = frozenset((
    'protectedpage',
    'cascadeprotected',
    'protectedtitle',
    'protectednamespace',
    'protectednamespace-interface',
    'permissiondenied',
    'blocked',
))

#: Error codes meaning the target does not exist.
NOTFOUND_CODES = frozenset((
    'missingtitle',
    'nosuchpageid',
    'cantundelete',
    'invalidtitle',
))

class ActionResult(enum.Enum):
    """The outcome of an action POSTed to a wiki."""

    #: The server confirmed the action.
    SUCCESS = 'success'
    #: Catch-all for errors not listed below.
    ERROR = 'error'
    #: No result could be determined from the reply.
    NONE = 'none'
    #: The token was expired or invalid.
    BADTOKEN = 'badtoken'
    #: The request carried no token.
    NOTOKEN = 'notoken'
    #: The user may not perform this action on this page.
    PROTECTED = 'protected'
    #: The server is throttling us.
    RATELIMITED = 'ratelimited'
    #: The target page does not exist.
    NOTFOUND = 'notfound'
    #: The page changed since the revision the edit was based on.
    EDITCONFLICT = 'editconflict'
    #: The request never got a usable reply.
    TRANSPORT = 'transport'

    @classmethod
    def from_code(cls, code):
        """Classify an API error code."""
        if code == 'ratelimited':
            return cls.RATELIMITED
        if code == 'badtoken':
            return cls.BADTOKEN
        if code == 'notoken':
            return cls.NOTOKEN
        if code == 'editconflict':
            return cls.EDITCONFLICT
        if code in PROTECTED_CODES:
            return cls.PROTECTED
        if code in NOTFOUND_CODES:
            return cls.NOTFOUND
        return cls.ERROR

    @classmethod
    def wrap(cls, reply, action):
        """Classify the ``reply`` to a POST of ``action``.

        Replies to ``delete`` and ``undelete`` carry no ``result`` field;
        for those the presence of the action's object means success.
        """
        if reply is None:
            return cls.TRANSPORT
        if reply.has_error:
            return cls.from_code(reply.error_code)
        body = reply.get(action)
        if isinstance(body, list):
            # purge and friends answer with one entry per title
            return cls.SUCCESS
        if not isinstance(body, dict):
            return cls.NONE
        result = body.get('result')
        if result is None or result == 'Success':
            return cls.SUCCESS
        log.info("Got back '%s' for %s, not a success", result, action)
        return cls.ERROR
