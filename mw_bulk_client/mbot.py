"""
mw_bulk_client.mbot - doing many things to a wiki at once.

A Task is one unit of mutating work: which page, what to do to it, and
with what text. A ConcurrentTaskRunner runs any number of Tasks with a
bounded number in flight and reports the ones that failed:

.. code-block:: python

    runner = ConcurrentTaskRunner(wp, max_parallel=5)
    failed = runner.run([
        Task.edit('Sandbox 1', 'Hello', 'Testing'),
        Task.delete('Sandbox 2', 'Test page'),
        Task.add_text('Sandbox 3', '\\n[[Category:Tests]]', 'Categorize'),
    ])
    for task in failed:
        print('Could not', task.kind.value, task.title)

One failing (or even crashing) Task never stops the others.
"""
import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from . import actions
from .upload import ChunkedUploadManager

__all__ = ['TaskKind', 'Task', 'ConcurrentTaskRunner']

log = logging.getLogger(__name__)

class TaskKind(enum.Enum):
    """What a Task does."""
    EDIT = 'edit'
    ADDTEXT = 'add text to'
    REPLACE = 'replace text in'
    DELETE = 'delete'
    UNDELETE = 'restore'
    UPLOAD = 'upload'

def _do_edit(wiki, task):
    return actions.edit(wiki, task.title, task.text, task.summary)

def _do_add_text(wiki, task):
    return actions.add_text(wiki, task.title, task.text, task.summary,
                            append=task.extra.get('append', True))

def _do_replace(wiki, task):
    return actions.replace_text(wiki, task.title, task.extra.get('pattern'),
                                task.extra.get('repl'), task.summary,
                                add=task.text or '')

def _do_delete(wiki, task):
    return actions.delete(wiki, task.title, task.summary)

def _do_undelete(wiki, task):
    return actions.undelete(wiki, task.title, task.summary)

def _do_upload(wiki, task):
    manager = ChunkedUploadManager(wiki)
    return manager.upload(task.extra['path'], task.title,
                          desc=task.text or '', summary=task.summary or '')

_JOBS = {
    TaskKind.EDIT: _do_edit,
    TaskKind.ADDTEXT: _do_add_text,
    TaskKind.REPLACE: _do_replace,
    TaskKind.DELETE: _do_delete,
    TaskKind.UNDELETE: _do_undelete,
    TaskKind.UPLOAD: _do_upload,
}

class Task:
    """One page's worth of work.

    ``job``, if given, is called as ``job(wiki, task)`` instead of the
    default function for ``kind``. Any extra keyword arguments are kept
    in ``extra`` for the job to use.
    """
    def __init__(self, title, text=None, summary=None, kind=TaskKind.EDIT,
                 job=None, **extra):
        """Initialize the Task."""
        self.title = title
        self.text = text
        self.summary = summary
        self.kind = kind
        self.job = job
        self.extra = extra
        self.succeeded = None

    def __repr__(self):
        """Represent a Task."""
        return '<Task {} {!r}>'.format(self.kind.name, self.title)

    __str__ = __repr__

    @classmethod
    def edit(cls, title, text, summary):
        """Make a Task that replaces the text of ``title``."""
        return cls(title, text, summary, TaskKind.EDIT)

    @classmethod
    def add_text(cls, title, text, summary, append=True):
        """Make a Task that appends (or prepends) ``text``."""
        return cls(title, text, summary, TaskKind.ADDTEXT, append=append)

    @classmethod
    def replace(cls, title, pattern, repl, summary, add=None):
        """Make a Task that substitutes ``pattern`` with ``repl``, then
        appends ``add``.
        """
        return cls(title, add, summary, TaskKind.REPLACE,
                   pattern=pattern, repl=repl)

    @classmethod
    def delete(cls, title, reason):
        """Make a Task that deletes ``title``."""
        return cls(title, None, reason, TaskKind.DELETE)

    @classmethod
    def undelete(cls, title, reason):
        """Make a Task that restores ``title``."""
        return cls(title, None, reason, TaskKind.UNDELETE)

    @classmethod
    def upload(cls, path, title, desc, summary):
        """Make a Task that uploads the file at ``path`` to ``title``."""
        return cls(title, desc, summary, TaskKind.UPLOAD, path=path)

    def execute(self, wiki):
        """Do the work. Returns (and records in ``succeeded``) whether it
        worked. Exceptions propagate.
        """
        job = self.job or _JOBS[self.kind]
        self.succeeded = bool(job(wiki, self))
        return self.succeeded

def _check_parallel(value):
    if value < 1:
        raise ValueError('max_parallel must be at least 1, not {}'
                         .format(value))
    return value

class ConcurrentTaskRunner:
    """Runs Tasks against one Wiki in a bounded pool of threads."""

    def __init__(self, wiki, max_parallel=None, executor=None):
        """Initialize the runner.

        ``max_parallel`` defaults to the wiki's configuration. If an
        ``executor`` (anything with a ``submit`` method) is given it is
        used instead of a fresh ThreadPoolExecutor and is not shut down.
        """
        self.wiki = wiki
        self.max_parallel = _check_parallel(
            wiki.conf.max_parallel if max_parallel is None else max_parallel)
        self.executor = executor
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._done = 0

    def __repr__(self):
        """Represent the runner."""
        return '<ConcurrentTaskRunner for {}, {} at a time>'.format(
            self.wiki, self.max_parallel)

    __str__ = __repr__

    def cancel(self):
        """Stop starting new tasks. Tasks already running finish."""
        log.info('%s: cancelling, no new tasks will start', self.wiki)
        self._cancelled.set()

    @property
    def cancelled(self):
        """Whether cancel() was called."""
        return self._cancelled.is_set()

    def _run_one(self, task, total, slots, failed):
        try:
            if self._cancelled.is_set():
                return
            try:
                ok = task.execute(self.wiki)
            except Exception: #pylint: disable=broad-except
                log.exception('%s: %r crashed', self.wiki, task)
                task.succeeded = ok = False
            with self._lock:
                self._done += 1
                if not ok:
                    failed.append(task)
                log.info('%s: done with %d/%d tasks', self.wiki,
                         self._done, total)
        finally:
            slots.release()

    def run(self, tasks, max_parallel=None):
        """Run ``tasks`` and return the list of those that failed.

        Tasks skipped because of cancel() are not in the list.
        """
        tasks = list(tasks)
        limit = _check_parallel(
            self.max_parallel if max_parallel is None else max_parallel)
        slots = threading.BoundedSemaphore(limit)
        failed = []
        self._done = 0
        log.info('%s: running %d tasks, %d at a time', self.wiki,
                 len(tasks), limit)

        executor = self.executor
        if executor is None:
            executor = ThreadPoolExecutor(max_workers=limit)
        try:
            futures = []
            for task in tasks:
                # never more than limit tasks in flight, even if the
                # executor has more workers
                slots.acquire()
                if self._cancelled.is_set():
                    slots.release()
                    break
                futures.append(executor.submit(self._run_one, task,
                                               len(tasks), slots, failed))
            for future in futures:
                future.result()
        finally:
            if self.executor is None:
                executor.shutdown(wait=True)

        if self._cancelled.is_set():
            log.info('%s: cancelled after %d of %d tasks', self.wiki,
                     self._done, len(tasks))
        return failed

    def mass_edit(self, titles, text, summary):
        """Replace the text of every one of ``titles`` with ``text``.
        Returns the titles that could not be edited.
        """
        return [task.title for task in self.run(
            Task.edit(title, text, summary) for title in titles)]

    def mass_delete(self, titles, reason):
        """Delete every one of ``titles``. Returns the titles that could
        not be deleted.
        """
        return [task.title for task in self.run(
            Task.delete(title, reason) for title in titles)]

    def mass_restore(self, titles, reason):
        """Restore every one of ``titles``. Returns the titles that could
        not be restored.
        """
        return [task.title for task in self.run(
            Task.undelete(title, reason) for title in titles)]
