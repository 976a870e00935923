"""This submodule contains the classes that wrap list query items."""
from datetime import datetime, timezone

__all__ = [
    'DataEntry',
    'Revision',
    'Contrib',
    'ImageInfo',
    'LogEntry',
    'RCEntry',
]

def parse_timestamp(value):
    """Parse an ISO 8601 API timestamp into an aware datetime.

    Returns None for None or the empty string.
    """
    if not value:
        return None
    return datetime.strptime(value, '%Y-%m-%dT%H:%M:%SZ').replace(
        tzinfo=timezone.utc)

class DataEntry:
    """A hunk of API data. Every field the server sent becomes an
    attribute.
    """
    def __init__(self, wiki, **data):
        """Initialize the entry by copying kwargs to __dict__"""
        self.wiki = wiki
        self.title = None
        self.user = None
        self.summary = data.pop('comment', None)
        self.__dict__.update(data)
        self.timestamp = parse_timestamp(data.get('timestamp'))

    def __repr__(self):
        """Represent some data."""
        return '<{} {}>'.format(type(self).__name__, self.info)

    __str__ = __repr__

    def __getitem__(self, key):
        """Get an attribute like a dict item."""
        return self.__dict__.__getitem__(key)

    @property
    def info(self):
        """Return a dict of the fields of this entry."""
        data = self.__dict__.copy()
        del data['wiki']
        return data

class Revision(DataEntry):
    """A revision of a page."""
    def __init__(self, wiki, **data):
        """Initialize a Revision. Text lives in the main slot."""
        self.revid = None
        self.text = None
        super().__init__(wiki, **data)
        slots = data.get('slots')
        if slots and 'main' in slots:
            self.text = slots['main'].get('*', slots['main'].get('content'))
        elif '*' in data:
            self.text = data['*']

    def __eq__(self, other):
        """Check if two revisions are the same."""
        return isinstance(other, Revision) and self.revid == other.revid

    def __hash__(self):
        """Revision.__hash__() <==> hash(Revision)"""
        return hash(self.revid)

class Contrib(DataEntry):
    """A user contribution."""
    def __init__(self, wiki, **data):
        """Initialize a Contrib."""
        self.revid = None
        self.parentid = None
        super().__init__(wiki, **data)

    def __eq__(self, other):
        """Check if two contributions are the same."""
        return isinstance(other, Contrib) and self.revid == other.revid

    def __hash__(self):
        """Contrib.__hash__() <==> hash(Contrib)"""
        return hash(self.revid)

class ImageInfo(DataEntry):
    """One revision of a file."""
    def __init__(self, wiki, **data):
        """Initialize an ImageInfo."""
        self.url = None
        self.size = None
        self.width = None
        self.height = None
        self.sha1 = None
        super().__init__(wiki, **data)

    def __lt__(self, other):
        """Newest first."""
        mine = self.timestamp or datetime.min.replace(tzinfo=timezone.utc)
        theirs = other.timestamp or datetime.min.replace(tzinfo=timezone.utc)
        return mine > theirs

class LogEntry(DataEntry):
    """A log event."""
    def __init__(self, wiki, **data):
        """Initialize a LogEntry."""
        self.logid = None
        self.type = None
        self.action = None
        super().__init__(wiki, **data)

    def __eq__(self, other):
        """Check if two log events are the same."""
        return isinstance(other, LogEntry) and self.logid == other.logid

    def __hash__(self):
        """LogEntry.__hash__() <==> hash(LogEntry)"""
        return hash(self.logid)

class RCEntry(DataEntry):
    """A recent change."""
    def __init__(self, wiki, **data):
        """Initialize an RCEntry."""
        self.rcid = None
        self.type = None
        super().__init__(wiki, **data)

    def __eq__(self, other):
        """Check if two changes are the same."""
        return isinstance(other, RCEntry) and self.rcid == other.rcid

    def __hash__(self):
        """RCEntry.__hash__() <==> hash(RCEntry)"""
        return hash(self.rcid)

def format_timestamp(value):
    """Turn a datetime into an API timestamp. Strings pass through."""
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%SZ')
