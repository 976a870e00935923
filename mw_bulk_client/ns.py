"""
mw_bulk_client.ns - namespaces.

Every Wiki builds one NamespaceTable when it starts, from the wiki's
``siteinfo``. It knows every namespace name and alias, so it can tell
which namespace a title is in and strip or swap the prefix:

.. code-block:: python

    >>> wp.ns.which_ns('image:Foo.png')
    NS(6)
    >>> wp.ns.strip('Image:Foo.png')
    'Foo.png'
    >>> wp.ns.convert_if_not_in('Foo', mw.NS.CATEGORY)
    'Category:Foo'

The table is never changed after it is built. Another wiki (see
``Wiki.getwiki``) builds its own.
"""
import logging
import re

__all__ = ['NS', 'NamespaceTable']

log = logging.getLogger(__name__)

MAIN_NAME = 'Main'

class NS(int):
    """A namespace id. Behaves as the plain int it wraps."""

    def __repr__(self):
        """Represent a namespace."""
        return 'NS({})'.format(int(self))

    __str__ = __repr__

NS.MAIN = NS(0)
NS.TALK = NS(1)
NS.USER = NS(2)
NS.USER_TALK = NS(3)
NS.PROJECT = NS(4)
NS.PROJECT_TALK = NS(5)
NS.FILE = NS(6)
NS.FILE_TALK = NS(7)
NS.MEDIAWIKI = NS(8)
NS.MEDIAWIKI_TALK = NS(9)
NS.TEMPLATE = NS(10)
NS.TEMPLATE_TALK = NS(11)
NS.HELP = NS(12)
NS.HELP_TALK = NS(13)
NS.CATEGORY = NS(14)
NS.CATEGORY_TALK = NS(15)

def _fold(name):
    """Case- and underscore-insensitive form of a namespace name."""
    return name.replace('_', ' ').strip().casefold()

def _entries(container):
    """Namespace entries come as a dict keyed by id (formatversion=1)
    or as a list (formatversion=2).
    """
    if isinstance(container, dict):
        return container.values()
    return container or ()

def _name(entry):
    """The local name of a namespace or alias entry."""
    for key in ('*', 'name', 'alias'):
        if key in entry:
            return entry[key]
    return ''

class NamespaceTable:
    """Bidirectional namespace id <-> name table for one wiki."""

    def __init__(self, siteinfo):
        """Build the table from the ``query`` part of a siteinfo reply
        with ``siprop=namespaces|namespacealiases``.
        """
        self._by_id = {}
        self._by_name = {}

        for entry in _entries(siteinfo.get('namespaces')):
            nsid = NS(entry['id'])
            name = _name(entry) or MAIN_NAME
            self._by_id[nsid] = name
            self._add(name, nsid)
            canonical = entry.get('canonical')
            if canonical:
                self._add(canonical, nsid)

        for entry in siteinfo.get('namespacealiases') or ():
            self._add(_name(entry), NS(entry['id']))

        # main namespace titles have no prefix, so "Main:" is not matched
        names = sorted((n for n, i in self._by_name.items() if i != NS.MAIN),
                       key=len, reverse=True)
        if names:
            alternatives = '|'.join(
                re.escape(name).replace(r'\ ', ' ').replace(' ', '[ _]')
                for name in names
            )
            self.pattern = re.compile('^({}):'.format(alternatives), re.I)
        else:
            self.pattern = None
        log.debug('Built namespace table with %d names', len(self._by_name))

    def _add(self, name, nsid):
        self._by_name[_fold(name)] = nsid

    def __repr__(self):
        """Represent the table."""
        return '<NamespaceTable of {} namespaces>'.format(len(self._by_id))

    __str__ = __repr__

    def __contains__(self, ns):
        """Check if ``ns`` (an id) exists on the wiki."""
        return ns in self._by_id

    def _match(self, title):
        if self.pattern is None:
            return None
        return self.pattern.match(title)

    def get_ns(self, prefix):
        """Return the NS for a namespace name or alias (without the colon),
        or None if there is no such namespace.
        """
        return self._by_name.get(_fold(prefix))

    def name_of(self, ns):
        """Return the local name of namespace ``ns``."""
        return self._by_id[NS(ns)]

    def which_ns(self, title):
        """Return the NS ``title`` is in. Titles without a known prefix
        are in the main namespace.
        """
        match = self._match(title)
        if match is None:
            return NS.MAIN
        return self._by_name[_fold(match.group(1))]

    def strip(self, title):
        """Remove the namespace prefix from ``title``, if it has one."""
        match = self._match(title)
        if match is None or match.end() == len(title):
            return title
        return title[match.end():]

    def convert_if_not_in(self, title, ns):
        """Return ``title`` as-is if it is already in ``ns``, otherwise move
        it into ``ns`` by swapping (or adding) the prefix.
        """
        if self.which_ns(title) == ns:
            return title
        if ns == NS.MAIN:
            return self.strip(title)
        return '{}:{}'.format(self.name_of(ns), self.strip(title))

    def talk_page_of(self, title):
        """Return the talk page of ``title``, or None if ``title`` is a
        special page or already a talk page.
        """
        nsid = self.which_ns(title)
        if nsid < 0 or nsid % 2 == 1 or NS(nsid + 1) not in self:
            return None
        return '{}:{}'.format(self.name_of(nsid + 1), self.strip(title))

    def talk_page_belongs_to(self, title):
        """Return the page the talk page ``title`` belongs to, or None if
        ``title`` is not a talk page.
        """
        nsid = self.which_ns(title)
        if nsid < 0 or nsid % 2 == 0 or NS(nsid - 1) not in self:
            return None
        if nsid == NS.TALK:
            return self.strip(title)
        return '{}:{}'.format(self.name_of(nsid - 1), self.strip(title))

    def create_filter(self, *namespaces):
        """Make a pipe-separated namespace filter for a request."""
        ids = sorted(set(int(ns) for ns in namespaces))
        return '|'.join(str(i) for i in ids)

    def filter_by_ns(self, titles, *namespaces):
        """Keep only the ``titles`` that are in one of ``namespaces``."""
        wanted = set(int(ns) for ns in namespaces)
        return [title for title in titles if self.which_ns(title) in wanted]
