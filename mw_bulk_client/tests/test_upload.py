"""Test chunked uploads."""
import io
import os
import tempfile
from unittest import TestCase, mock
import requests
from mw_bulk_client.upload import (ChunkManager, ChunkedUploadManager,
                                   State)
from mw_bulk_client.tests.wikistub import StubWiki, scripted

SUCCESS = {'upload': {'result': 'Success', 'filename': 'Foo.bin'}}

def _chunk_server(fail_offsets=()):
    """Stash every chunk, handing out filekeys k1, k2, ...; raise for
    chunks at ``fail_offsets``.
    """
    state = {'n': 0}
    def respond(params):
        if params['offset'] in fail_offsets:
            raise requests.ConnectionError('chunk lost')
        state['n'] += 1
        return {'upload': {'result': 'Continue',
                           'offset': params['offset'] + 4,
                           'filekey': 'k{}'.format(state['n'])}}
    return respond

class TestChunkManager(TestCase):
    """Test ChunkManager."""
    def test_chunk_math(self):
        """Assert 10,000,000 bytes in 4 MiB chunks make three chunks."""
        size = 10000000
        manager = ChunkManager(io.BytesIO(b'\0' * size), size, 4194304)
        self.assertEqual(manager.total_chunks, 3)
        chunks = list(manager)
        self.assertEqual([len(chunk) for chunk in chunks],
                         [4194304, 4194304, 1611392])
        self.assertEqual([chunk.offset for chunk in chunks],
                         [0, 4194304, 8388608])
        self.assertTrue(all(chunk.filesize == size for chunk in chunks))
        self.assertEqual(manager.chunk_count, 3)
        self.assertFalse(manager.has())
        self.assertIsNone(manager.next_chunk())
    def test_exact_multiple(self):
        """Assert the last chunk is full when the size divides evenly."""
        manager = ChunkManager(io.BytesIO(b'abcdefgh'), 8, 4)
        self.assertEqual([chunk.data for chunk in manager], [b'abcd', b'efgh'])
    def test_empty(self):
        """Assert an empty file has no chunks."""
        manager = ChunkManager(io.BytesIO(b''), 0, 4)
        self.assertEqual(manager.total_chunks, 0)
        self.assertEqual(list(manager), [])
    def test_short_file(self):
        """Assert a file shorter than promised is an error."""
        manager = ChunkManager(io.BytesIO(b'abc'), 8, 4)
        with self.assertRaises(OSError):
            list(manager)
    def test_bad_chunk_size(self):
        """Assert a chunk size below 1 is refused."""
        with self.assertRaises(ValueError):
            ChunkManager(io.BytesIO(b'abc'), 3, 0)
    def test_open(self):
        """Assert open() measures the file."""
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'data.bin')
            with open(path, 'wb') as f:
                f.write(b'0123456789')
            with ChunkManager.open(path, 4) as manager:
                self.assertEqual(manager.filesize, 10)
                self.assertEqual([c.data for c in manager],
                                 [b'0123', b'4567', b'89'])

class TestChunkedUploadManager(TestCase):
    """Test ChunkedUploadManager."""
    def _upload(self, wiki, data=b'0123456789', **kwargs):
        manager = ChunkedUploadManager(wiki, chunk_size=4, **kwargs)
        result = manager.upload_stream(io.BytesIO(data), len(data),
                                       'File:Foo.bin', 'desc', 'summary')
        return manager, result
    def test_success(self):
        """Assert chunks carry the previous filekey and the commit the last."""
        wiki = StubWiki(_chunk_server(), scripted(SUCCESS))
        manager, result = self._upload(wiki)
        self.assertTrue(result)
        self.assertIs(manager.state, State.DONE)
        self.assertEqual(manager.filekey, 'k3')
        params = [call[2] for call in wiki.uploads]
        self.assertEqual([p['offset'] for p in params], [0, 4, 8])
        self.assertNotIn('filekey', params[0])
        self.assertEqual([p.get('filekey') for p in params[1:]], ['k1', 'k2'])
        self.assertTrue(all(p['stash'] == 1 for p in params))
        self.assertTrue(all(p['filesize'] == 10 for p in params))
        self.assertEqual([call[1] for call in wiki.uploads],
                         [b'0123', b'4567', b'89'])
        self.assertEqual(wiki.uploads[0][0], 'Foo.bin')
        self.assertEqual(len(wiki.posts), 1)
        commit = wiki.posts[0]
        self.assertEqual(commit['filekey'], 'k3')
        self.assertEqual(commit['filename'], 'Foo.bin')
        self.assertEqual(commit['text'], 'desc')
        self.assertEqual(commit['comment'], 'summary')
        self.assertNotIn('stash', commit)
    def test_chunk_retry(self):
        """Assert a failed chunk is re-sent without moving the file."""
        server = _chunk_server()
        failures = [requests.ConnectionError('once')]
        def flaky(params):
            if params['offset'] == 4 and failures:
                raise failures.pop()
            return server(params)
        wiki = StubWiki(flaky, scripted(SUCCESS))
        manager, result = self._upload(wiki)
        self.assertTrue(result)
        self.assertEqual([call[2]['offset'] for call in wiki.uploads],
                         [0, 4, 4, 8])
        self.assertEqual(wiki.uploads[1][1], wiki.uploads[2][1])
    def test_salvage(self):
        """Assert exactly one salvage commit, with the last filekey, after
        the chunks run out of retries.
        """
        wiki = StubWiki(_chunk_server(fail_offsets=(8,)), scripted(SUCCESS))
        manager, result = self._upload(wiki, max_retries=2)
        self.assertTrue(result)
        self.assertIs(manager.state, State.DONE)
        self.assertEqual(len(wiki.uploads), 4)
        self.assertEqual(len(wiki.posts), 1)
        self.assertEqual(wiki.posts[0]['filekey'], 'k2')
    def test_salvage_fails(self):
        """Assert a failed salvage is reported, not retried."""
        error = {'error': {'code': 'stashfailed', 'info': 'incomplete'}}
        wiki = StubWiki(_chunk_server(fail_offsets=(8,)), scripted(error))
        manager, result = self._upload(wiki, max_retries=2)
        self.assertFalse(result)
        self.assertIs(manager.state, State.FAILED)
        self.assertEqual(len(wiki.posts), 1)
        self.assertEqual(manager.filekey, 'k2')
    def test_commit_transport_error(self):
        """Assert a commit lost in transit is salvaged once."""
        wiki = StubWiki(_chunk_server(),
                        scripted(requests.Timeout('slow'), SUCCESS))
        manager, result = self._upload(wiki)
        self.assertTrue(result)
        self.assertEqual(len(wiki.posts), 2)
        self.assertEqual([p['filekey'] for p in wiki.posts], ['k3', 'k3'])
    def test_commit_rejected(self):
        """Assert a commit the server answered is not salvaged."""
        error = {'error': {'code': 'fileexists-no-change', 'info': 'dupe'}}
        wiki = StubWiki(_chunk_server(), scripted(error))
        manager, result = self._upload(wiki)
        self.assertFalse(result)
        self.assertIs(manager.state, State.FAILED)
        self.assertEqual(len(wiki.posts), 1)
    def test_no_filekey_no_salvage(self):
        """Assert nothing is committed if no chunk ever landed."""
        wiki = StubWiki(_chunk_server(fail_offsets=(0,)), scripted(SUCCESS))
        manager, result = self._upload(wiki, max_retries=3)
        self.assertFalse(result)
        self.assertIs(manager.state, State.FAILED)
        self.assertIsNone(manager.filekey)
        self.assertEqual(len(wiki.uploads), 3)
        self.assertEqual(wiki.posts, [])
    def test_protected(self):
        """Assert a forbidden upload is not retried."""
        wiki = StubWiki(scripted({'error': {'code': 'permissiondenied',
                                            'info': 'no'}}),
                        scripted(SUCCESS))
        manager, result = self._upload(wiki)
        self.assertFalse(result)
        self.assertEqual(len(wiki.uploads), 1)
        self.assertEqual(wiki.posts, [])
    def test_ratelimited(self):
        """Assert a rate limited chunk sleeps, then goes again."""
        server = _chunk_server()
        limited = [{'error': {'code': 'ratelimited', 'info': 'slow down'}}]
        def respond(params):
            if limited:
                return limited.pop()
            return server(params)
        wiki = StubWiki(respond, scripted(SUCCESS), ratelimit_sleep=7)
        with mock.patch('mw_bulk_client.upload.time.sleep') as sleep:
            manager, result = self._upload(wiki)
        self.assertTrue(result)
        sleep.assert_called_once_with(7)
        self.assertEqual([call[2]['offset'] for call in wiki.uploads],
                         [0, 0, 4, 8])
    def test_bad_token(self):
        """Assert a rejected token is refreshed before the retry."""
        server = _chunk_server()
        rejected = [{'error': {'code': 'badtoken', 'info': 'Invalid token'}}]
        def respond(params):
            if rejected:
                return rejected.pop()
            return server(params)
        wiki = StubWiki(respond, scripted(SUCCESS))
        manager, result = self._upload(wiki)
        self.assertTrue(result)
        self.assertEqual(wiki.refreshes, ['tok1+\\'])
        self.assertEqual(wiki.uploads[1][2]['token'], 'tok2+\\')
    def test_single_use(self):
        """Assert a manager cannot be reused."""
        wiki = StubWiki(_chunk_server(), scripted(SUCCESS))
        manager, _ = self._upload(wiki)
        with self.assertRaises(ValueError):
            manager.upload_stream(io.BytesIO(b'x'), 1, 'File:Bar.bin')
    def test_upload_path(self):
        """Assert upload() reads a file from disk."""
        wiki = StubWiki(_chunk_server(), scripted(SUCCESS))
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'Foo.bin')
            with open(path, 'wb') as f:
                f.write(b'0123456789')
            manager = ChunkedUploadManager(wiki, chunk_size=4)
            self.assertTrue(manager.upload(path, 'Image:Foo.bin'))
        self.assertEqual(len(wiki.uploads), 3)
        self.assertEqual(wiki.posts[0]['filename'], 'Foo.bin')
    def test_missing_file(self):
        """Assert a missing local file is a failure, not a crash."""
        wiki = StubWiki(_chunk_server(), scripted(SUCCESS))
        manager = ChunkedUploadManager(wiki, chunk_size=4)
        self.assertFalse(manager.upload('/nonexistent/file.bin', 'File:X'))
        self.assertIs(manager.state, State.FAILED)
    def test_bad_settings(self):
        """Assert explicit settings below 1 are refused, not defaulted."""
        with self.assertRaises(ValueError):
            ChunkedUploadManager(StubWiki(), chunk_size=0)
        with self.assertRaises(ValueError):
            ChunkedUploadManager(StubWiki(), max_retries=0)
