"""
mw_bulk_client.qyoo - asking about many titles at once.

The API only takes so many titles per request (50 for most users). A
BatchQuery splits any number of titles into legal groups, drains every
group's continuations, and hands back one map keyed by title:

.. code-block:: python

    >>> batch = mw.BatchQuery(wp)
    >>> cats = batch.categories_on_page(['Main Page', 'foo', 'Nonexistent'])
    >>> cats['Main Page']
    ['Category:Main Pages']
    >>> cats['foo'] == cats['Foo']      # the server normalized "foo"
    True
    >>> cats['Nonexistent']
    []

Every title passed in gets a key in the result, whether or not the
server had anything to say about it.

Use for efficiency in batch processing.
"""
import logging
import math
from .dwrap import ImageInfo
from .misc import ResultMap
from .ns import NS
from . import query as Q

__all__ = ['GroupQueue', 'BatchQuery']

log = logging.getLogger(__name__)

class GroupQueue:
    """A read-only queue that hands out up to ``max_poll`` items at once."""

    def __init__(self, items, max_poll):
        """Set up the queue over ``items``, which is copied, not modified."""
        if max_poll < 1:
            raise ValueError('max_poll must be at least 1, not {}'
                             .format(max_poll))
        self._items = list(items)
        self._start = 0
        self.max_poll = max_poll

    def __repr__(self):
        return '<GroupQueue {}/{} polled, {} at a time>'.format(
            min(self._start, len(self._items)), len(self._items),
            self.max_poll)

    __str__ = __repr__

    def __len__(self):
        """The total number of groups this queue hands out."""
        return math.ceil(len(self._items) / self.max_poll)

    def has(self):
        """Return True if there are items left."""
        return self._start < len(self._items)

    def poll(self):
        """Return the next group of at most ``max_poll`` items, or [] if
        there is nothing left.
        """
        if not self.has():
            return []
        group = self._items[self._start:self._start + self.max_poll]
        self._start += self.max_poll
        return group

    def __iter__(self):
        """Iterate over the remaining groups."""
        while self.has():
            yield self.poll()

class BatchQuery:
    """Multi-title queries for one Wiki."""

    def __init__(self, wiki, group_max=None):
        """Set up the BatchQuery. ``group_max`` defaults to the wiki's
        configured group size.
        """
        self.wiki = wiki
        if group_max is None:
            group_max = wiki.conf.group_query_max
        if group_max < 1:
            raise ValueError('group_max must be at least 1, not {}'
                             .format(group_max))
        self.group_max = group_max

    def __repr__(self):
        return '<BatchQuery for {}>'.format(self.wiki)

    __str__ = __repr__

    def _groups(self, titles):
        if isinstance(titles, str):
            raise TypeError('Expected a list of titles, not a single str: '
                            + repr(titles))
        return GroupQueue(titles, self.group_max)

    def _query(self, template, titles_key, group, params, limit=None):
        query = Q.ContinuationQuery(self.wiki, template, limit=limit)
        query.set(titles_key, group)
        return query.update(params)

    def _cont_prop(self, titles, template, params, elem_key, limit=None):
        """Fetch a continuing ``prop`` for every title.

        Returns a ResultMap of title -> list of the entries under
        ``elem_key``. ``limit`` caps the number of items fetched over all
        groups; titles of groups left unasked once it is reached map to [].
        """
        result = ResultMap()
        fetched = 0
        for group in self._groups(titles):
            for title in group:
                result.touch(title)
            if limit is not None and limit > 0:
                if fetched >= limit:
                    continue
                query = self._query(template, 'titles', group, params,
                                    limit - fetched)
            else:
                query = self._query(template, 'titles', group, params)
            normalized = {}
            for reply in query:
                normalized.update(reply.normalized)
                for page in reply.pages():
                    values = page.get(elem_key)
                    title = page.get('title')
                    result.touch(title)
                    if values:
                        result.extend(title, values)
                        fetched += len(values)
            result.normalize(normalized)
        return result

    def _nocont_prop(self, titles, template, params, elem_key):
        """Fetch a non-continuing ``prop`` for every title.

        Returns a ResultMap of title -> the value under ``elem_key`` (None
        where the page has none).
        """
        result = ResultMap()
        for group in self._groups(titles):
            for title in group:
                result.touch(title, None)
            reply = self._query(template, 'titles', group, params).next()
            if reply is None:
                continue
            for page in reply.pages():
                result[page.get('title')] = page.get(elem_key)
            result.normalize(reply.normalized)
        return result

    def _nocont_list(self, titles, template, params, titles_key, list_key):
        """Run a non-continuing ``list`` query over every group of
        ``titles`` (sent as ``titles_key``).

        Generates a ``(group, items, normalized)`` triple per group that
        got a reply, ``items`` being the entries under ``list_key`` and
        ``normalized`` the server's sent -> corrected title map.
        """
        for group in self._groups(titles):
            reply = self._query(template, titles_key, group, params).next()
            if reply is not None:
                yield group, reply.list_comp(list_key), reply.normalized

    #time for more API methods :D
    def categories_on_page(self, titles):
        """Map each title to the categories on it."""
        return self._cont_prop(titles, Q.PAGECATEGORIES, None,
                               'categories').pluck('title')

    def links_on_page(self, titles, *namespaces):
        """Map each title to the titles it links to, optionally only those
        in ``namespaces``.
        """
        params = {}
        if namespaces:
            params['plnamespace'] = self.wiki.ns.create_filter(*namespaces)
        return self._cont_prop(titles, Q.LINKSONPAGE, params,
                               'links').pluck('title')

    def links_here(self, titles, redirects=False):
        """Map each title to the pages linking to it. If ``redirects`` is
        True, only redirects are listed, otherwise only non-redirects.
        """
        params = {'lhshow': ('' if redirects else '!') + 'redirect'}
        return self._cont_prop(titles, Q.LINKSHERE, params,
                               'linkshere').pluck('title')

    def templates_on_page(self, titles):
        """Map each title to the templates it transcludes."""
        return self._cont_prop(titles, Q.TEMPLATES, None,
                               'templates').pluck('title')

    def images_on_page(self, titles):
        """Map each title to the files it uses."""
        return self._cont_prop(titles, Q.IMAGES, None, 'images').pluck('title')

    def transcluded_in(self, titles, *namespaces):
        """Map each title to the pages that transclude it."""
        params = {}
        if namespaces:
            params['tinamespace'] = self.wiki.ns.create_filter(*namespaces)
        return self._cont_prop(titles, Q.TRANSCLUDEDIN, params,
                               'transcludedin').pluck('title')

    def file_usage(self, titles):
        """Map each file title to the pages that use it."""
        return self._cont_prop(titles, Q.FILEUSAGE, None,
                               'fileusage').pluck('title')

    def global_usage(self, titles):
        """Map each file title to (title, wiki) pairs of its use across
        wikis. Needs the GlobalUsage extension.
        """
        entries = self._cont_prop(titles, Q.GLOBALUSAGE, None, 'globalusage')
        return {title: [(e.get('title'), e.get('wiki')) for e in values]
                for title, values in entries.items()}

    def duplicates_of(self, titles, local_only=False):
        """Map each file title to the names of its duplicates. Names come
        back without a namespace prefix.
        """
        params = {'dflocalonly': 1} if local_only else None
        entries = self._cont_prop(titles, Q.DUPLICATEFILES, params,
                                  'duplicatefiles')
        return {title: [e['name'].replace('_', ' ') for e in values]
                for title, values in entries.items()}

    def shared_duplicates_of(self, titles):
        """Like duplicates_of, but only duplicates in a shared repository."""
        entries = self._cont_prop(titles, Q.DUPLICATEFILES, None,
                                  'duplicatefiles')
        return {title: [e['name'].replace('_', ' ') for e in values
                        if 'shared' in e]
                for title, values in entries.items()}

    def image_info(self, titles):
        """Map each file title to its ImageInfo history, newest first."""
        entries = self._cont_prop(titles, Q.IMAGEINFO, None, 'imageinfo')
        result = {}
        for title, values in entries.items():
            infos = [ImageInfo(self.wiki, **value) for value in values]
            # imageinfo is not a well-behaved module
            infos.sort()
            result[title] = infos
        return result

    def page_text(self, titles):
        """Map each title to its wikitext, or None if it does not exist."""
        result = {}
        for title, revs in self._nocont_prop(titles, Q.PAGETEXT, None,
                                             'revisions').items():
            if not revs:
                result[title] = None
                continue
            slots = revs[0].get('slots')
            if slots:
                main = slots.get('main', {})
                result[title] = main.get('*', main.get('content'))
            else:
                result[title] = revs[0].get('*')
        return result

    def category_size(self, titles):
        """Map each category title to the number of pages in it. Empty and
        nonexistent categories have size 0.
        """
        return {title: (info or {}).get('size', 0)
                for title, info in self._nocont_prop(
                    titles, Q.CATEGORYINFO, None, 'categoryinfo').items()}

    def exists(self, titles):
        """Map each title to whether it exists.

        Titles the server did not answer about (a failed request) are
        reported as not existing.
        """
        result = {}
        for group in self._groups(titles):
            reply = self._query(Q.EXISTS, 'titles', group, None).next()
            pages = {}
            if reply is not None:
                for page in reply.pages():
                    pages[page.get('title')] = ('missing' not in page
                                                and 'invalid' not in page)
                reply.normalize(pages)
            result.update(pages)
            for title in group:
                result.setdefault(title, False)
        return result

    def exists_filter(self, titles, exists=True):
        """Return the titles that exist (or, if ``exists`` is False, the
        ones that don't), in input order.
        """
        found = self.exists(titles)
        return [title for title in titles if found[title] == exists]

    def external_links(self, titles):
        """Map each title to the external URLs on it."""
        entries = self._cont_prop(titles, Q.EXTLINKS, None, 'extlinks')
        return {title: [e.get('*', e.get('url')) for e in values]
                for title, values in entries.items()}

    def text_extracts(self, titles):
        """Map each title to a plain-text extract of its lead section, or
        None. Needs the TextExtracts extension, which answers for at most
        20 titles per request; set ``group_max`` accordingly.
        """
        return self._nocont_prop(titles, Q.TEXTEXTRACTS, None, 'extract')

    def resolve_redirects(self, titles):
        """Map each title to its redirect target, or itself if it is not
        a redirect.
        """
        result = ResultMap((title, title) for title in titles)
        for _, entries, normalized in self._nocont_list(
                titles, Q.RESOLVEREDIRECT, None, 'titles', 'redirects'):
            for entry in entries:
                result[entry['from']] = entry['to']
            for from_, to in normalized.items():
                result[from_] = result.get(to, to)
        return result

    def user_rights(self, users):
        """Map each username to its groups. A "User:" prefix is dropped.
        Users that do not exist map to [].
        """
        users = [self.wiki.ns.strip(user)
                 if self.wiki.ns.which_ns(user) == NS.USER else user
                 for user in users]
        result = ResultMap((user, []) for user in users)
        for group, entries, normalized in self._nocont_list(
                users, Q.USERRIGHTS, None, 'ususers', 'users'):
            sent = {_user_key(user): user for user in group}
            for entry in entries:
                name = entry.get('name')
                groups = entry.get('groups', [])
                result[name] = groups
                if _user_key(name) in sent:
                    result[sent[_user_key(name)]] = groups
            result.normalize(normalized)
        return result

def _user_key(name):
    """A username the way the server spells it: spaces, not underscores,
    and a capital first letter.
    """
    name = (name or '').replace('_', ' ').strip()
    return name[:1].upper() + name[1:]
