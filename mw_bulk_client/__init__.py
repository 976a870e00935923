"""
A MediaWiki API client for bulk work.

Handles continuation, title batching, chunked uploads and parallel edits,
so a bot can ask about ten thousand pages as easily as about one.

Requires the ``requests`` library.

http://www.mediawiki.org/

Installation
============

From a checkout of the repository::

    pip install -e .

To run the tests::

    pip install -e .[test]
    pytest

Example Usage
=============

.. code-block:: python

    import mw_bulk_client as mw

Log in:

.. code-block:: python

    wp = mw.Wiki("https://en.wikipedia.org/w/api.php", "MyCoolBot/0.0.0")

    wp.login("MyCoolBot@main", bot_password)

Read many pages at once:

.. code-block:: python

    titles = list(wp.category_members("Category:Redirects"))

    # 50 titles per request, continuations followed, every title answered
    texts = wp.batch.page_text(titles)

Only fetch the first 1200 members of a huge category:

.. code-block:: python

    for title in wp.category_members("Living people", limit=1200):
        print(title)

Remove all uses of a template, five edits at a time:

.. code-block:: python

    targets = wp.batch.transcluded_in(["Template:Stub"], mw.NS.MAIN)
    tasks = [mw.Task.replace(title, r"\\{\\{[Ss]tub\\}\\}", "", "Unstub")
             for title in targets["Template:Stub"]]

    failed = wp.runner(max_parallel=5).run(tasks)

Upload a big file:

.. code-block:: python

    wp.upload("lecture.webm", "File:Lecture.webm",
              desc="== Summary ==\\nA lecture", summary="New lecture")

The library logs through the ``logging`` module under the
``mw_bulk_client`` logger and never configures handlers itself.

MIT Licensed.
"""

__version__ = '1.0.0'

from .wiki import Wiki
from .conf import Conf
from .excs import WikiError, WikiWarning, ActionResult
from .ns import NS, NamespaceTable
from .query import ContinuationQuery, QueryTemplate, QueryReply
from .qyoo import GroupQueue, BatchQuery
from .upload import ChunkedUploadManager, ChunkManager, UploadError
from .mbot import Task, TaskKind, ConcurrentTaskRunner
from .dwrap import Revision, Contrib, ImageInfo, LogEntry, RCEntry

__all__ = [
    'Wiki',
    'Conf',
    'WikiError',
    'WikiWarning',
    'ActionResult',
    'NS',
    'NamespaceTable',
    'ContinuationQuery',
    'QueryTemplate',
    'QueryReply',
    'GroupQueue',
    'BatchQuery',
    'ChunkedUploadManager',
    'ChunkManager',
    'UploadError',
    'Task',
    'TaskKind',
    'ConcurrentTaskRunner',
    'Revision',
    'Contrib',
    'ImageInfo',
    'LogEntry',
    'RCEntry',
]
