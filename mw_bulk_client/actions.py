"""
mw_bulk_client.actions - POSTing changes to a wiki.

Every mutating action goes through ``perform``, which applies one retry
policy:

* up to ``conf.max_retries`` attempts;
* rate limited: sleep ``conf.ratelimit_sleep`` seconds, then retry;
* bad or missing token: refresh the token (once for all threads), then
  retry;
* protected, forbidden or missing page, or an edit conflict: give up
  at once;
* anything else: retry straight away.

The helpers return True on success and never raise for API errors.
"""
import logging
import re
import time
import requests
from .dwrap import format_timestamp
from .excs import ActionResult
from .qyoo import GroupQueue
from .misc import pipe_fence

__all__ = [
    'post_action',
    'perform',
    'edit',
    'add_text',
    'replace_text',
    'move',
    'delete',
    'undelete',
    'purge',
]

log = logging.getLogger(__name__)

def post_action(wiki, action, form, token=None):
    """POST one ``action`` and classify the reply.

    If ``token`` is given it is sent along. Transport errors are logged
    and reported as ActionResult.TRANSPORT.
    """
    params = dict(form)
    params['action'] = action
    if token is not None:
        params['token'] = token
    try:
        reply = wiki.post_request(_raise=False, **params)
    except (requests.RequestException, ValueError) as exc:
        log.warning('%s: %s failed in transit: %r', wiki, action, exc)
        return ActionResult.TRANSPORT
    result = ActionResult.wrap(reply, action)
    if reply.has_error:
        log.debug('%s: %s -> %s: %s', wiki, action, reply.error_code,
                  reply.error_info)
    return result

def perform(wiki, action, form, target=None, apply_token=True):
    """POST ``action`` with retries. Returns the final ActionResult."""
    target = target or form.get('title') or action
    result = ActionResult.NONE
    for attempt in range(wiki.conf.max_retries):
        token = wiki.csrf_token if apply_token else None
        result = post_action(wiki, action, form, token)
        if result is ActionResult.SUCCESS:
            return result
        if result is ActionResult.RATELIMITED:
            log.info('%s: ratelimited by server, sleeping %s seconds',
                     wiki, wiki.conf.ratelimit_sleep)
            time.sleep(wiki.conf.ratelimit_sleep)
        elif result in (ActionResult.BADTOKEN, ActionResult.NOTOKEN):
            log.info('%s: token rejected, refreshing', wiki)
            wiki.refresh_token(token)
        elif result is ActionResult.PROTECTED:
            log.error('%s: %s is protected, cannot %s', wiki, target, action)
            return result
        elif result is ActionResult.NOTFOUND:
            log.error('%s: %s does not exist, cannot %s', wiki, target,
                      action)
            return result
        elif result is ActionResult.EDITCONFLICT:
            log.error('%s: %s changed while we worked on it, cannot %s',
                      wiki, target, action)
            return result
        else:
            log.warning('%s: got %s, retrying: %d', wiki, result.name,
                        attempt)

    log.error("%s: could not %s '%s', aborting", wiki, action, target)
    return result

def _edit_form(wiki, title, summary, **fields):
    form = {'title': title, 'summary': summary}
    form.update(fields)
    if wiki.conf.is_bot:
        form['bot'] = 1
    return form

def edit(wiki, title, text, summary, basetimestamp=None):
    """Replace the text of ``title``.

    If ``basetimestamp`` (the timestamp of the revision ``text`` was
    derived from) is given, the edit fails rather than overwrite a newer
    revision.
    """
    log.info('%s: editing %s', wiki, title)
    form = _edit_form(wiki, title, summary, text=text)
    if basetimestamp is not None:
        form['basetimestamp'] = format_timestamp(basetimestamp)
    return perform(wiki, 'edit', form) is ActionResult.SUCCESS

def add_text(wiki, title, text, summary, append=True):
    """Append (or prepend) ``text`` to ``title``."""
    log.info('%s: adding text to %s', wiki, title)
    key = 'appendtext' if append else 'prependtext'
    form = _edit_form(wiki, title, summary, **{key: text})
    return perform(wiki, 'edit', form) is ActionResult.SUCCESS

def replace_text(wiki, title, pattern, repl, summary, add=''):
    """Substitute regex ``pattern`` with ``repl`` in the text of ``title``,
    then append ``add``. Fails if the page is edited in between.

    Raises ValueError if there would be nothing to do.
    """
    if not pattern and not add:
        raise ValueError('pattern and add cannot both be empty.')
    rev = wiki.last_revision(title)
    if rev is None or rev.text is None:
        log.error('%s: %s does not exist, cannot edit', wiki, title)
        return False
    text = rev.text
    if pattern:
        text = re.sub(pattern, repl or '', text)
    return edit(wiki, title, text + (add or ''), summary,
                basetimestamp=rev.timestamp)

def move(wiki, title, new_title, reason, move_talk=False,
         move_subpages=False, suppress_redirect=False):
    """Move ``title`` to ``new_title``. Needs the move right."""
    log.info('%s: moving %s to %s', wiki, title, new_title)
    form = {'from': title, 'to': new_title, 'reason': reason}
    if move_talk:
        form['movetalk'] = 1
    if move_subpages:
        form['movesubpages'] = 1
    if suppress_redirect:
        form['noredirect'] = 1
    return perform(wiki, 'move', form, target=title) is ActionResult.SUCCESS

def delete(wiki, title, reason):
    """Delete ``title``. Needs the delete right."""
    log.info('%s: deleting %s', wiki, title)
    form = {'title': title, 'reason': reason}
    return perform(wiki, 'delete', form) is ActionResult.SUCCESS

def undelete(wiki, title, reason):
    """Restore all deleted revisions of ``title``."""
    log.info('%s: restoring %s', wiki, title)
    form = {'title': title, 'reason': reason}
    return perform(wiki, 'undelete', form) is ActionResult.SUCCESS

def purge(wiki, titles):
    """Purge the cache of ``titles``, one group at a time. Returns True
    if every group was purged.
    """
    log.info('%s: purging %d titles', wiki, len(titles))
    results = []
    for group in GroupQueue(titles, wiki.conf.group_query_max):
        results.append(perform(wiki, 'purge', {'titles': pipe_fence(group)},
                               target=group[0], apply_token=False))
    return all(result is ActionResult.SUCCESS for result in results)
