"""
mw_bulk_client.upload - chunked uploads of large files.

The file is sent in fixed-size chunks to the upload stash. The server
hands back a ``filekey`` for the stash after every chunk, which the next
chunk (and finally the commit) must carry:

.. code-block:: python

    manager = ChunkedUploadManager(wp)
    if not manager.upload('big.ogv', 'File:Big.ogv',
                          desc='== Summary ==\\nA big video',
                          summary='Uploading a big video'):
        print('Stuck in the stash as', manager.filekey)

A manager goes IDLE -> STREAMING -> COMMITTING -> DONE (or FAILED).
"""
import enum
import logging
import math
import time
import requests
from .excs import ActionResult
from .ns import NS

__all__ = [
    'State',
    'Chunk',
    'ChunkManager',
    'ChunkedUploadManager',
    'UploadError',
]

log = logging.getLogger(__name__)

class UploadError(Exception):
    """A chunk could not be uploaded."""
    pass

class State(enum.Enum):
    """Where a ChunkedUploadManager is in the upload."""
    IDLE = 'idle'
    STREAMING = 'streaming'
    COMMITTING = 'committing'
    DONE = 'done'
    FAILED = 'failed'

class Chunk:
    """One piece of a file: its byte offset, the size of the whole file,
    and the bytes themselves.
    """
    __slots__ = ('offset', 'filesize', 'data')

    def __init__(self, offset, filesize, data):
        self.offset = offset
        self.filesize = filesize
        self.data = data

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        """Represent a Chunk."""
        return '<Chunk of {} bytes at {}/{}>'.format(len(self.data),
                                                     self.offset,
                                                     self.filesize)

    __str__ = __repr__

class ChunkManager:
    """Cuts a binary stream into Chunks, reading it once, front to back."""

    def __init__(self, stream, filesize, chunk_size):
        """Set up the manager over an open binary ``stream`` of
        ``filesize`` bytes.
        """
        if chunk_size < 1:
            raise ValueError('chunk_size must be positive, not {}'
                             .format(chunk_size))
        self.stream = stream
        self.filesize = filesize
        self.chunk_size = chunk_size
        self.offset = 0
        self.chunk_count = 0
        self.total_chunks = math.ceil(filesize / chunk_size)

    @classmethod
    def open(cls, path, chunk_size):
        """Open the file at ``path`` and manage it."""
        stream = open(path, 'rb')
        try:
            stream.seek(0, 2)
            filesize = stream.tell()
            stream.seek(0)
        except OSError:
            stream.close()
            raise
        return cls(stream, filesize, chunk_size)

    def __repr__(self):
        return '<ChunkManager [{} of {}]>'.format(self.chunk_count,
                                                  self.total_chunks)

    __str__ = __repr__

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.close()

    def close(self):
        """Close the underlying stream."""
        self.stream.close()

    def has(self):
        """Return True if there are still chunks to hand out."""
        return self.offset < self.filesize

    def next_chunk(self):
        """Read and return the next Chunk, or None if the file is done.

        Raises OSError if the file ends early.
        """
        if not self.has():
            return None
        size = min(self.chunk_size, self.filesize - self.offset)
        data = self._read(size)
        chunk = Chunk(self.offset, self.filesize, data)
        self.offset += size
        self.chunk_count += 1
        return chunk

    def _read(self, size):
        parts = []
        wanted = size
        while wanted:
            part = self.stream.read(wanted)
            if not part:
                raise OSError('File ended {} bytes early'.format(wanted))
            parts.append(part)
            wanted -= len(part)
        return b''.join(parts)

    def __iter__(self):
        """Iterate over the remaining chunks."""
        while self.has():
            yield self.next_chunk()

class ChunkedUploadManager:
    """Uploads one file through the stash, chunk by chunk, then commits
    it. Create a new manager for every upload.
    """

    def __init__(self, wiki, chunk_size=None, max_retries=None):
        """Initialize the manager with the Wiki to upload to."""
        self.wiki = wiki
        if chunk_size is None:
            chunk_size = wiki.conf.chunk_size
        if max_retries is None:
            max_retries = wiki.conf.max_retries
        if chunk_size < 1 or max_retries < 1:
            raise ValueError('chunk_size and max_retries must be at least 1')
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.state = State.IDLE
        self.filekey = None

    def __repr__(self):
        """Represent the manager."""
        return '<ChunkedUploadManager {} filekey={}>'.format(
            self.state.name, self.filekey)

    __str__ = __repr__

    def _filename(self, title):
        """Target filename: the title without any File: prefix."""
        if self.wiki.ns.which_ns(title) == NS.FILE:
            return self.wiki.ns.strip(title)
        return title

    def upload(self, path, title, desc='', summary=''):
        """Upload the file at ``path`` to ``title`` with description page
        text ``desc`` and upload log ``summary``. Overwrites existing
        files. Returns True on success.
        """
        if self.state is not State.IDLE:
            raise ValueError('This manager was already used: ' + repr(self))
        filename = self._filename(title)
        log.info('%s: uploading %s', self.wiki, path)
        try:
            with ChunkManager.open(path, self.chunk_size) as chunks:
                return self._upload(chunks, filename, desc, summary, path)
        except (UploadError, requests.RequestException,
                ValueError, OSError) as exc:
            log.error('%s: upload of %s failed: %r', self.wiki, path, exc)
            return self._salvage(filename, desc, summary)

    def upload_stream(self, stream, filesize, title, desc='', summary=''):
        """Like upload, but read ``filesize`` bytes from an open binary
        ``stream``. The stream is not closed.
        """
        if self.state is not State.IDLE:
            raise ValueError('This manager was already used: ' + repr(self))
        filename = self._filename(title)
        chunks = ChunkManager(stream, filesize, self.chunk_size)
        try:
            return self._upload(chunks, filename, desc, summary, filename)
        except (UploadError, requests.RequestException,
                ValueError, OSError) as exc:
            log.error('%s: upload of %s failed: %r', self.wiki, filename, exc)
            return self._salvage(filename, desc, summary)

    def _upload(self, chunks, filename, desc, summary, source):
        self.state = State.STREAMING
        for chunk in chunks:
            log.info("%s: uploading chunk [%d of %d] of '%s'", self.wiki,
                     chunks.chunk_count, chunks.total_chunks, source)
            self._send_chunk(filename, chunk, chunks.chunk_count)

        self.state = State.COMMITTING
        if self._commit(filename, desc, summary):
            self.state = State.DONE
            return True
        self.state = State.FAILED
        log.error("%s: could not unstash '%s' as '%s'", self.wiki,
                  self.filekey, filename)
        return False

    def _send_chunk(self, filename, chunk, number):
        """POST one chunk, retrying it without touching the file. Sets
        ``filekey`` on success, raises UploadError when out of attempts.
        """
        for attempt in range(self.max_retries):
            token = self.wiki.csrf_token
            params = {
                'action': 'upload',
                'filename': filename,
                'token': token,
                'ignorewarnings': 1,
                'stash': 1,
                'offset': chunk.offset,
                'filesize': chunk.filesize,
                'filekey': self.filekey,
            }
            try:
                reply = self.wiki.multipart_request(filename, chunk.data,
                                                    _raise=False, **params)
            except (requests.RequestException, ValueError) as exc:
                log.warning('%s: chunk %d failed, retrying - %d: %r',
                            self.wiki, number, attempt, exc)
                continue

            if reply.has_error:
                result = ActionResult.from_code(reply.error_code)
                if result is ActionResult.PROTECTED:
                    raise UploadError('Not allowed to upload {}: {}'.format(
                        filename, reply.error_code))
                if result is ActionResult.RATELIMITED:
                    log.info('%s: ratelimited by server, sleeping %s seconds',
                             self.wiki, self.wiki.conf.ratelimit_sleep)
                    time.sleep(self.wiki.conf.ratelimit_sleep)
                elif result in (ActionResult.BADTOKEN, ActionResult.NOTOKEN):
                    self.wiki.refresh_token(token)
                else:
                    log.warning('%s: chunk %d got %s, retrying - %d',
                                self.wiki, number, reply.error_code, attempt)
                continue

            filekey = reply.get_path('upload', 'filekey')
            if filekey:
                self.filekey = filekey
                return
            log.warning('%s: no filekey for chunk %d, retrying - %d',
                        self.wiki, number, attempt)

        raise UploadError('Chunk {} of {} failed {} times'.format(
            number, filename, self.max_retries))

    def _commit(self, filename, desc, summary):
        """Publish the stashed file. Transport errors propagate."""
        log.info("%s: unstashing '%s' as '%s'", self.wiki, self.filekey,
                 filename)
        reply = self.wiki.post_request(
            _raise=False,
            action='upload',
            filename=filename,
            text=desc,
            comment=summary,
            filekey=self.filekey,
            ignorewarnings=1,
            token=self.wiki.csrf_token,
        )
        return ActionResult.wrap(reply, 'upload') is ActionResult.SUCCESS

    def _salvage(self, filename, desc, summary):
        """Try the commit once more after a failure. The server may have
        stashed the whole file even though we never saw it say so.
        """
        if self.filekey is None:
            self.state = State.FAILED
            return False
        self.state = State.COMMITTING
        log.info('%s: attempting to salvage upload of %s', self.wiki,
                 filename)
        try:
            if self._commit(filename, desc, summary):
                self.state = State.DONE
                return True
        except (requests.RequestException, ValueError) as exc:
            log.error('%s: salvage failed: %r', self.wiki, exc)
        self.state = State.FAILED
        log.error("%s: upload of '%s' failed; stash key for manual "
                  "recovery: %s", self.wiki, filename, self.filekey)
        return False
