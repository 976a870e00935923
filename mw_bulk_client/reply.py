"""
mw_bulk_client.reply - the decoded JSON a wiki sends back.

A Reply is a plain dict with a few accessors on top. Data is always
read through an explicit path, never by searching the whole tree for a
key, since the same key shows up at several depths in MediaWiki replies.

.. code-block:: python

    >>> reply.get_path('query', 'tokens', 'csrftoken')
    'abc123+\\\\'
    >>> reply.get_path('query', 'nope', default=[])
    []
"""

__all__ = ['Reply']

_MISSING = object()

class Reply(dict):
    """A decoded API reply."""

    @property
    def has_error(self):
        """Whether the server returned an ``error`` object."""
        return isinstance(self.get('error'), dict)

    @property
    def error_code(self):
        """The API error code, or None."""
        if not self.has_error:
            return None
        return self['error'].get('code')

    @property
    def error_info(self):
        """The human-readable error message, or None."""
        if not self.has_error:
            return None
        return self['error'].get('info')

    def get_path(self, *keys, default=None):
        """Follow ``keys`` down the nested reply.

        Integer keys index into lists. Returns ``default`` as soon as a
        step is missing.
        """
        node = self
        for key in keys:
            if isinstance(node, dict):
                node = node.get(key, _MISSING)
            elif isinstance(node, list) and isinstance(key, int):
                node = node[key] if -len(node) <= key < len(node) else _MISSING
            else:
                node = _MISSING
            if node is _MISSING:
                return default
        return node
