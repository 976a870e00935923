"""
See the Wiki docstrings.
"""
#pylint: disable=too-many-public-methods
import logging
import threading
from urllib.parse import urlparse
from warnings import warn as _warn
import requests
from . import actions
from . import query as Q
from .conf import Conf
from .dwrap import Contrib, LogEntry, RCEntry, Revision, format_timestamp
from .excs import WikiError, WikiWarning
from .mbot import ConcurrentTaskRunner
from .ns import NS, NamespaceTable
from .qyoo import BatchQuery
from .reply import Reply
from .upload import ChunkedUploadManager

__all__ = ['Wiki']

log = logging.getLogger(__name__)

#: The token every anonymous session has.
ANON_TOKEN = '+\\'

_HIDDEN = frozenset(('lgpassword', 'password', 'token', 'lgtoken'))

class Wiki:
    """A session with one wiki. Owns the cookies, the edit token, the
    namespace table and the configuration, and is what every other part
    of the library talks to.
    """

    def __init__(self, api_url, user_agent=None, session=None,
                 do_init=True, **conf):
        """Initialize a wiki with the URL of its api.php.

        Keyword arguments not listed here override fields of the Conf.
        If ``do_init`` is False, the namespace table is not fetched and
        stays empty. A ``session`` may be passed to share cookies.
        """
        self.api_url = api_url
        self.domain = urlparse(api_url).netloc or api_url
        self.conf = Conf(**conf)
        if user_agent is not None:
            self.conf.user_agent = user_agent
        self._session = session if session is not None else requests.Session()
        self._session.headers['User-Agent'] = self.conf.user_agent
        self.csrf_token = ANON_TOKEN
        self._token_lock = threading.Lock()
        self.username = None
        self._siblings = {api_url: self}
        self._siblings_lock = threading.Lock()
        self.batch = BatchQuery(self)
        self.ns = NamespaceTable({})
        if do_init:
            self.ns = self._fetch_namespaces()

    def __repr__(self):
        """Represent a Wiki object."""
        return '<Wiki at {addr}>'.format(addr=self.domain)

    __str__ = __repr__

    def __eq__(self, other):
        """Check if two Wikis are the same."""
        return isinstance(other, Wiki) and self.api_url == other.api_url

    def __hash__(self):
        """Wiki.__hash__() <==> hash(Wiki)"""
        return hash(self.api_url)

    # transport

    def request(self, _headers=None, _post=False, _files=None,
                _raise=True, **params):
        """Inner request method.

        Remains public since it might be used per se. Parameters that are
        None or False are dropped; True is sent as 1.

        Raises ``WikiError.<code>`` if the API returned an error, unless
        ``_raise`` is False. Network and HTTP errors (requests exceptions)
        and undecodable replies (ValueError) always propagate.
        """
        params = {key: (1 if value is True else value)
                  for key, value in params.items()
                  if value is not None and value is not False}
        params['format'] = 'json'
        log.debug('%s: %s %s', self, 'POST' if _post else 'GET',
                  {key: ('<hidden>' if key in _HIDDEN else value)
                   for key, value in params.items()})

        if _post:
            response = self._session.post(self.api_url, data=params,
                                          headers=_headers, files=_files,
                                          timeout=self.conf.timeout)
        else:
            response = self._session.get(self.api_url, params=params,
                                         headers=_headers,
                                         timeout=self.conf.timeout)
        response.raise_for_status()
        reply = Reply(response.json())

        if 'warnings' in reply:
            for module, value in reply['warnings'].items():
                _warn('warning from {} module: {}'.format(
                    module,
                    value.get('*', value.get('warnings'))
                ), WikiWarning)

        if _raise and reply.has_error:
            code = reply.error_code
            raise getattr(WikiError, code)(
                '{}: {}'.format(code, reply.error_info))

        return reply

    def post_request(self, **params):
        """Alias for Wiki.request(_post=True)"""
        return self.request(_post=True, **params)

    def multipart_request(self, filename, data, **params):
        """POST ``data`` (bytes) as the file part of a multipart form."""
        files = {'chunk': (filename, data, 'application/octet-stream')}
        return self.request(_post=True, _files=files, **params)

    # session

    def _fetch_namespaces(self):
        reply = self.request(action='query', **Q.NAMESPACES.fields)
        return NamespaceTable(reply.get('query', {}))

    def refresh_token(self, stale=None):
        """Fetch a new CSRF token and return it.

        ``stale`` is the token the caller found to be rejected. If another
        thread has already replaced it, nothing is fetched. A failed fetch
        is logged and the current token returned.
        """
        with self._token_lock:
            if stale is not None and stale != self.csrf_token:
                return self.csrf_token
            try:
                reply = self.request(action='query', **Q.TOKENS_CSRF.fields)
            except (requests.RequestException, ValueError, WikiError) as exc:
                log.error('%s: could not fetch a csrf token: %r', self, exc)
                return self.csrf_token
            token = reply.get_path('query', 'tokens', 'csrftoken')
            if token:
                self.csrf_token = token
                log.debug('%s: got a new csrf token', self)
            return self.csrf_token

    def login(self, username, password):
        """Log in with a username and (bot) password; store cookies.
        Returns True on success.
        """
        reply = self.request(action='query', **Q.TOKENS_LOGIN.fields)
        lgtoken = reply.get_path('query', 'tokens', 'logintoken')
        reply = self.post_request(action='login', lgname=username,
                                  lgpassword=password, lgtoken=lgtoken)
        result = reply.get_path('login', 'result')
        if result != 'Success':
            log.error('%s: could not log in as %s: %s', self, username,
                      reply.get_path('login', 'reason', default=result))
            return False
        self.username = reply.get_path('login', 'lgusername',
                                       default=username)
        log.info('%s: logged in as %s', self, self.username)
        self.refresh_token()
        return True

    def logout(self):
        """Log out the current user."""
        self.post_request(action='logout', token=self.csrf_token)
        self.username = None
        self.csrf_token = ANON_TOKEN

    def whoami(self):
        """Return the name of the user this session acts as."""
        reply = self.request(action='query', **Q.USERINFO.fields)
        return reply.get_path('query', 'userinfo', 'name')

    def rights(self):
        """Return the rights of the user this session acts as."""
        reply = self.request(action='query', **Q.USERINFO.fields)
        return reply.get_path('query', 'userinfo', 'rights', default=[])

    def allowed_file_extensions(self):
        """Return the file extensions this wiki accepts for upload."""
        reply = self.request(action='query', **Q.ALLOWEDFILEXTS.fields)
        return [entry['ext'] for entry in reply.get_path(
            'query', 'fileextensions', default=())]

    def getwiki(self, api_url):
        """Return a Wiki for another domain sharing this session's cookies,
        creating it on first use. Every wiki reached this way shares one
        cache.
        """
        with self._siblings_lock:
            wiki = self._siblings.get(api_url)
            if wiki is not None:
                return wiki
            log.info('%s: opening a session with %s', self, api_url)
            wiki = type(self)(api_url, user_agent=self.conf.user_agent,
                              session=self._session, do_init=False)
            wiki.conf = self.conf.copy()
            wiki.username = self.username
            wiki._siblings = self._siblings
            wiki._siblings_lock = self._siblings_lock
            wiki.ns = wiki._fetch_namespaces()
            if self.username is not None:
                wiki.refresh_token()
            self._siblings[api_url] = wiki
            return wiki

    # list queries

    def _generate(self, template, key, wrapper=None, limit=None, **params):
        """Centralize generation of API data."""
        query = Q.ContinuationQuery(self, template, limit=limit)
        query.update({key: value for key, value in params.items()
                      if value is not None})
        for reply in query:
            for item in reply.list_comp(key):
                if wrapper is None:
                    yield item
                else:
                    yield wrapper(self, **item)

    def _username(self, user):
        """Drop a "User:" prefix."""
        if self.ns.which_ns(user) == NS.USER:
            return self.ns.strip(user)
        return user

    def _titles(self, template, key, limit=None, **params):
        for item in self._generate(template, key, limit=limit, **params):
            yield item['title']

    def all_pages(self, prefix=None, namespace=NS.MAIN, redirects_only=False,
                  protected_only=False, limit=None):
        """Generate the titles of all pages in ``namespace``, optionally
        only those starting with ``prefix``.
        """
        return self._titles(
            Q.ALLPAGES, 'allpages', limit=limit,
            apprefix=prefix,
            apnamespace=int(namespace),
            apfilterredir='redirects' if redirects_only else None,
            apprtype='edit|move|upload' if protected_only else None,
        )

    def prefix_index(self, prefix, namespace=NS.MAIN, limit=None):
        """Generate the titles in ``namespace`` starting with ``prefix``.
        ``prefix`` is given without the namespace.
        """
        return self._titles(Q.PREFIXINDEX, 'allpages', limit=limit,
                            apprefix=prefix, apnamespace=int(namespace))

    def category_members(self, title, *namespaces, limit=None):
        """Generate the titles in a category, optionally only those in
        ``namespaces``. The "Category:" prefix is optional.
        """
        return self._titles(
            Q.CATEGORYMEMBERS, 'categorymembers', limit=limit,
            cmtitle=self.ns.convert_if_not_in(title, NS.CATEGORY),
            cmnamespace=(self.ns.create_filter(*namespaces)
                         if namespaces else None),
        )

    def user_contribs(self, user, *namespaces, limit=None,
                      older_first=False):
        """Generate the Contribs of ``user``, newest first unless
        ``older_first``.
        """
        return self._generate(
            Q.USERCONTRIBS, 'usercontribs', Contrib, limit=limit,
            ucuser=self._username(user),
            ucnamespace=(self.ns.create_filter(*namespaces)
                         if namespaces else None),
            ucdir='newer' if older_first else None,
        )

    def user_uploads(self, user, limit=None):
        """Generate the titles of files uploaded by ``user``."""
        return self._titles(Q.USERUPLOADS, 'allimages', limit=limit,
                            aiuser=self._username(user))

    def log_events(self, title=None, user=None, log_type=None, limit=None):
        """Generate LogEntries, newest first.

        For more information on results, see:
        https://www.mediawiki.org/wiki/API:Logevents
        """
        return self._generate(
            Q.LOGEVENTS, 'logevents', LogEntry, limit=limit,
            letitle=title,
            leuser=self._username(user) if user else None,
            letype=log_type,
        )

    def recent_changes(self, start=None, end=None, limit=None):
        """Generate RCEntries between ``start`` and ``end`` (datetimes or
        API timestamps), newest first.
        """
        return self._generate(
            Q.RECENTCHANGES, 'recentchanges', RCEntry, limit=limit,
            rcstart=format_timestamp(start),
            rcend=format_timestamp(end),
        )

    def protected_titles(self, *namespaces, limit=None):
        """Generate the titles protected from creation."""
        return self._titles(
            Q.PROTECTEDTITLES, 'protectedtitles', limit=limit,
            ptnamespace=(self.ns.create_filter(*namespaces)
                         if namespaces else None),
        )

    def revisions(self, title, limit=None, older_first=False,
                  start=None, end=None):
        """Generate the Revisions of ``title``, newest first unless
        ``older_first``.
        """
        query = Q.ContinuationQuery(self, Q.REVISIONS, limit=limit)
        query.set('titles', title)
        if older_first:
            query.set('rvdir', 'newer')
        if start is not None:
            query.set('rvstart', format_timestamp(start))
        if end is not None:
            query.set('rvend', format_timestamp(end))
        for reply in query:
            for page in reply.pages():
                for rev in page.get('revisions', ()):
                    yield Revision(self, title=page.get('title'), **rev)

    def last_revision(self, title):
        """Return the newest Revision of ``title``, or None if it does not
        exist.
        """
        return next(iter(self.revisions(title, limit=1)), None)

    def what_links_here(self, title, redirects=False):
        """Return the titles linking to ``title`` (or, if ``redirects``,
        the redirects to it).
        """
        return self.batch.links_here([title], redirects)[title]

    # single-title conveniences over the batch queries

    def page_text(self, title):
        """Return the wikitext of ``title``, or None if it does not exist."""
        return self.batch.page_text([title])[title]

    def exists(self, title):
        """Check if ``title`` exists."""
        return self.batch.exists([title])[title]

    def categories_on_page(self, title):
        """Return the categories ``title`` is in."""
        return self.batch.categories_on_page([title])[title]

    def links_on_page(self, title, *namespaces):
        """Return the titles ``title`` links to."""
        return self.batch.links_on_page([title], *namespaces)[title]

    def templates_on_page(self, title):
        """Return the templates ``title`` transcludes."""
        return self.batch.templates_on_page([title])[title]

    def images_on_page(self, title):
        """Return the files ``title`` uses."""
        return self.batch.images_on_page([title])[title]

    def file_usage(self, title):
        """Return the pages using the file ``title``."""
        return self.batch.file_usage([title])[title]

    def transcluded_in(self, title, *namespaces):
        """Return the pages transcluding ``title``."""
        return self.batch.transcluded_in([title], *namespaces)[title]

    def external_links(self, title):
        """Return the external URLs on ``title``."""
        return self.batch.external_links([title])[title]

    def text_extract(self, title):
        """Return a plain-text extract of the lead of ``title``, or None."""
        return self.batch.text_extracts([title])[title]

    def image_info(self, title):
        """Return the ImageInfo history of the file ``title``."""
        return self.batch.image_info([title])[title]

    def category_size(self, title):
        """Return the number of pages in a category."""
        title = self.ns.convert_if_not_in(title, NS.CATEGORY)
        return self.batch.category_size([title])[title]

    def resolve_redirect(self, title):
        """Return the target of ``title``, or ``title`` itself."""
        return self.batch.resolve_redirects([title])[title]

    def talk_page_of(self, title):
        """Return the talk page of ``title``, or None."""
        return self.ns.talk_page_of(title)

    def talk_page_belongs_to(self, title):
        """Return the page the talk page ``title`` belongs to, or None."""
        return self.ns.talk_page_belongs_to(title)

    # actions

    def edit(self, title, text, summary):
        """Replace the text of ``title``. Returns True on success."""
        return actions.edit(self, title, text, summary)

    def add_text(self, title, text, summary, append=True):
        """Append (or prepend) ``text`` to ``title``."""
        return actions.add_text(self, title, text, summary, append)

    def replace_text(self, title, pattern, repl, summary, add=''):
        """Regex-replace in the text of ``title``, then append ``add``."""
        return actions.replace_text(self, title, pattern, repl, summary, add)

    def move(self, title, new_title, reason, move_talk=False,
             move_subpages=False, suppress_redirect=False):
        """Move ``title`` to ``new_title``. Returns True on success."""
        return actions.move(self, title, new_title, reason, move_talk,
                            move_subpages, suppress_redirect)

    def delete(self, title, reason):
        """Delete ``title``."""
        return actions.delete(self, title, reason)

    def undelete(self, title, reason):
        """Restore ``title``."""
        return actions.undelete(self, title, reason)

    def purge(self, *titles):
        """Purge the server cache of ``titles``."""
        return actions.purge(self, list(titles))

    def upload(self, path, title, desc='', summary=''):
        """Upload the file at ``path`` in chunks. Returns True on success."""
        return ChunkedUploadManager(self).upload(path, title, desc, summary)

    def runner(self, max_parallel=None, executor=None):
        """Return a ConcurrentTaskRunner for this wiki."""
        return ConcurrentTaskRunner(self, max_parallel, executor)
