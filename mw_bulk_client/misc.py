"""This submodule contains the small helpers."""

__all__ = ['ResultMap', 'pipe_fence']

def pipe_fence(values):
    """Join ``values`` with pipes, the way the API wants multiple values.

    Strings pass through untouched, and so does None.
    """
    if values is None or isinstance(values, str):
        return values
    return '|'.join(str(value) for value in values)

class ResultMap(dict):
    """A dict of title -> accumulated results.

    Used by the batch queries so that every title that was asked about
    gets an entry, even when the server had nothing to say about it.
    """

    def touch(self, key, default=list):
        """Make sure ``key`` has an entry, creating it with ``default()``
        if necessary. Return the entry.
        """
        if key not in self:
            self[key] = default() if callable(default) else default
        return self[key]

    def put(self, key, value):
        """Append ``value`` to the list stored under ``key``."""
        self.touch(key).append(value)

    def extend(self, key, values):
        """Append every one of ``values`` to the list under ``key``."""
        self.touch(key).extend(values)

    def normalize(self, pairs):
        """Apply title normalization.

        ``pairs`` maps a title as it was sent to the title the server
        corrected it to. The sent title is made to resolve to the same
        value as the corrected one.
        """
        for from_, to in pairs.items():
            if to in self:
                self[from_] = self[to]
        return self

    def pluck(self, key):
        """Return a plain dict mapping each title to a list of ``key``
        values taken from its entries.
        """
        return {title: [entry.get(key) for entry in entries]
                for title, entries in self.items()}
