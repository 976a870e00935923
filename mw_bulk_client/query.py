"""
mw_bulk_client.query - continuation-driven ``action=query`` requests.

A QueryTemplate describes the shape of one kind of query. A
ContinuationQuery built from one or more templates keeps asking the
server for more until the server stops sending ``continue`` or until the
caller's cap is reached:

.. code-block:: python

    q = ContinuationQuery(wp, CATEGORYMEMBERS, limit=1200)
    q.set('cmtitle', 'Category:Foo')
    while q.has():
        reply = q.next()
        if reply is None:
            break
        for member in reply.list_comp('categorymembers'):
            print(member['title'])

Parameters a template leaves as None must be filled in with ``set``
before ``next`` is called.
"""
import json
import logging
import requests
from .excs import WikiError
from .misc import pipe_fence

__all__ = [
    'QueryTemplate',
    'ContinuationQuery',
    'QueryReply',
]

log = logging.getLogger(__name__)

class QueryTemplate:
    """Default parameters for one kind of query, plus the name of its
    limit parameter (if it has one).
    """
    __slots__ = ('_fields', 'limit_key')

    def __init__(self, fields, limit_key=None):
        """Initialize the template.

        If ``limit_key`` is given, it defaults to "max".
        """
        fields = dict(fields)
        if limit_key is not None:
            fields.setdefault(limit_key, 'max')
        object.__setattr__(self, '_fields', fields)
        object.__setattr__(self, 'limit_key', limit_key)

    def __setattr__(self, name, value):
        raise AttributeError('QueryTemplate is immutable')

    def __repr__(self):
        """Represent a QueryTemplate."""
        return '<QueryTemplate {}>'.format(self._fields)

    __str__ = __repr__

    @property
    def fields(self):
        """A copy of the default parameters."""
        return dict(self._fields)

ALLOWEDFILEXTS = QueryTemplate({'meta': 'siteinfo', 'siprop': 'fileextensions'})
ALLPAGES = QueryTemplate({'list': 'allpages'}, 'aplimit')
CATEGORYINFO = QueryTemplate({'prop': 'categoryinfo', 'titles': None})
CATEGORYMEMBERS = QueryTemplate({'list': 'categorymembers',
                                 'cmtitle': None}, 'cmlimit')
DUPLICATEFILES = QueryTemplate({'prop': 'duplicatefiles',
                                'titles': None}, 'dflimit')
EXISTS = QueryTemplate({'prop': 'pageprops', 'ppprop': 'missing',
                        'titles': None})
EXTLINKS = QueryTemplate({'prop': 'extlinks', 'titles': None}, 'ellimit')
FILEUSAGE = QueryTemplate({'prop': 'fileusage', 'titles': None}, 'fulimit')
GLOBALUSAGE = QueryTemplate({'prop': 'globalusage', 'titles': None},
                            'gulimit')
IMAGEINFO = QueryTemplate({
    'prop': 'imageinfo',
    'iiprop': 'canonicaltitle|url|size|sha1|mime|user|timestamp|comment',
    'titles': None,
}, 'iilimit')
IMAGES = QueryTemplate({'prop': 'images', 'titles': None}, 'imlimit')
LINKSHERE = QueryTemplate({'prop': 'linkshere', 'lhprop': 'title',
                           'titles': None}, 'lhlimit')
LINKSONPAGE = QueryTemplate({'prop': 'links', 'titles': None}, 'pllimit')
LOGEVENTS = QueryTemplate({'list': 'logevents'}, 'lelimit')
NAMESPACES = QueryTemplate({'meta': 'siteinfo',
                            'siprop': 'namespaces|namespacealiases'})
PAGECATEGORIES = QueryTemplate({'prop': 'categories', 'titles': None},
                               'cllimit')
PAGETEXT = QueryTemplate({'prop': 'revisions', 'rvprop': 'content',
                          'rvslots': 'main', 'titles': None})
PREFIXINDEX = QueryTemplate({'list': 'allpages', 'apprefix': None},
                            'aplimit')
PROTECTEDTITLES = QueryTemplate({
    'list': 'protectedtitles',
    'ptprop': 'timestamp|level|user|comment',
}, 'ptlimit')
RECENTCHANGES = QueryTemplate({
    'list': 'recentchanges',
    'rcprop': 'title|timestamp|user|comment|ids',
    'rctype': 'edit|new|log',
}, 'rclimit')
RESOLVEREDIRECT = QueryTemplate({'redirects': 1, 'titles': None})
REVISIONS = QueryTemplate({
    'prop': 'revisions',
    'rvprop': 'ids|timestamp|user|comment|content',
    'rvslots': 'main',
    'titles': None,
}, 'rvlimit')
TEMPLATES = QueryTemplate({'prop': 'templates', 'titles': None}, 'tllimit')
TEXTEXTRACTS = QueryTemplate({'prop': 'extracts', 'exintro': 1,
                              'explaintext': 1, 'exlimit': 'max',
                              'titles': None})
TOKENS_CSRF = QueryTemplate({'meta': 'tokens', 'type': 'csrf'})
TOKENS_LOGIN = QueryTemplate({'meta': 'tokens', 'type': 'login'})
TRANSCLUDEDIN = QueryTemplate({'prop': 'transcludedin', 'tiprop': 'title',
                               'titles': None}, 'tilimit')
USERCONTRIBS = QueryTemplate({'list': 'usercontribs', 'ucuser': None},
                             'uclimit')
USERINFO = QueryTemplate({'meta': 'userinfo', 'uiprop': 'rights'})
USERRIGHTS = QueryTemplate({'list': 'users', 'usprop': 'groups',
                            'ususers': None})
USERUPLOADS = QueryTemplate({'list': 'allimages', 'aisort': 'timestamp',
                             'aiuser': None}, 'ailimit')

class QueryReply:
    """The reply to one round-trip of a ContinuationQuery.

    Knows where ``list``, ``prop`` and ``meta`` data live and applies
    title normalization to ``prop`` data.
    """
    def __init__(self, reply):
        """Wrap a Reply."""
        self.reply = reply
        self.normalized = {
            pair['from']: pair['to']
            for pair in reply.get_path('query', 'normalized', default=())
        }

    def __repr__(self):
        """Represent a QueryReply."""
        return '<QueryReply {}>'.format(list(self.reply.get('query', {})))

    __str__ = __repr__

    def pages(self):
        """The page objects under ``query.pages``, in server order."""
        pages = self.reply.get_path('query', 'pages', default=())
        if isinstance(pages, dict):
            return list(pages.values())
        return list(pages)

    def list_comp(self, key):
        """Return the items of a ``list`` query, or [] if there are none."""
        return list(self.reply.get_path('query', key, default=()))

    def prop_comp(self, title_key, value_key):
        """Map each page's ``title_key`` to its ``value_key`` (None if the
        page has no such value). Normalized titles are included.
        """
        result = {}
        for page in self.pages():
            result[page.get(title_key)] = page.get(value_key)
        return self.normalize(result)

    def meta_comp(self, key):
        """Return ``query.<key>`` of a ``meta`` query, or {}."""
        return self.reply.get_path('query', key, default={})

    def normalize(self, mapping):
        """Point every non-normalized title at the value of its
        normalized form. Returns ``mapping``.
        """
        for from_, to in self.normalized.items():
            if to in mapping:
                mapping[from_] = mapping[to]
        return mapping

class ContinuationQuery:
    """Drives one logical query, over as many round-trips as needed."""

    def __init__(self, wiki, *templates, limit=None):
        """Initialize the query from one or more QueryTemplates.

        ``limit`` caps the total number of items fetched over all
        round-trips; None (or anything below 1) means no cap.
        """
        self.wiki = wiki
        self.params = {'action': 'query', 'format': 'json'}
        self.limit_keys = []
        for template in templates:
            self.params.update(template.fields)
            if template.limit_key is not None:
                self.limit_keys.append(template.limit_key)

        self.can_continue = True
        self.query_limit = wiki.conf.max_result_limit
        self.total_limit = limit if limit is not None and limit > 0 else None
        self.count = 0

    def __repr__(self):
        """Represent a ContinuationQuery."""
        return '<ContinuationQuery {} ({} fetched)>'.format(self.params,
                                                           self.count)

    __str__ = __repr__

    def has(self):
        """Return True if another round-trip may be made."""
        return self.can_continue

    def set(self, key, value):
        """Set a request parameter. Lists and tuples are pipe-joined.

        Returns this query, for chaining.
        """
        if isinstance(value, (list, tuple, set, frozenset)):
            value = pipe_fence(value)
        self.params[key] = value
        return self

    def update(self, params):
        """Set several request parameters at once."""
        for key, value in (params or {}).items():
            self.set(key, value)
        return self

    def adjust_limit(self, limit):
        """Ask for ``limit`` items per round-trip. Anything below 1 or
        above the server maximum asks for "max".
        """
        if limit <= 0 or limit > self.wiki.conf.max_result_limit:
            value = 'max'
            self.query_limit = self.wiki.conf.max_result_limit
        else:
            value = limit
            self.query_limit = limit
        for key in self.limit_keys:
            self.params[key] = value
        return self

    def _apply_cap(self):
        """Shrink this round-trip's limit so the cap is never exceeded."""
        if self.total_limit is None:
            return
        remaining = self.total_limit - self.count
        if remaining < self.query_limit:
            self.adjust_limit(remaining)
        self.count += self.query_limit
        if self.count >= self.total_limit:
            self.can_continue = False

    def next(self):
        """Perform the next round-trip.

        Returns a QueryReply, or None if the query is already exhausted
        or the round-trip failed. A failed round-trip exhausts the query.
        """
        unset = sorted(k for k, v in self.params.items() if v is None)
        if unset:
            raise ValueError('Fill in all the required fields {} -> {}'
                             .format(unset, self.params))
        if not self.can_continue:
            return None

        self._apply_cap()
        try:
            reply = self.wiki.request(**self.params)
        except (requests.RequestException, ValueError, WikiError) as exc:
            log.error('%s: query %s failed, giving up: %r',
                      self.wiki, self.params, exc)
            self.can_continue = False
            return None

        cont = reply.get('continue')
        if isinstance(cont, dict):
            self.params.update(cont)
        else:
            self.can_continue = False

        if self.wiki.conf.debug:
            log.debug('%s: %s', self.wiki, json.dumps(reply, indent=2))

        return QueryReply(reply)

    def __iter__(self):
        """Iterate over the QueryReplies of every remaining round-trip."""
        while self.has():
            result = self.next()
            if result is None:
                return
            yield result
