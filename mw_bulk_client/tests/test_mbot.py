"""Test the concurrent task runner."""
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest import TestCase
import mw_bulk_client as mw
from mw_bulk_client.tests.wikistub import StubWiki

class Gauge:
    """Counts how many jobs run at once."""
    def __init__(self):
        self.lock = threading.Lock()
        self.current = 0
        self.peak = 0
        self.ran = []

    def job(self, wiki, task):
        with self.lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
            self.ran.append(task.title)
        time.sleep(0.005)
        with self.lock:
            self.current -= 1
        if task.extra.get('explode'):
            raise RuntimeError('boom')
        return not task.extra.get('fail')

class TestTask(TestCase):
    """Test Task."""
    def test_dispatch(self):
        """Assert a Task runs the action for its kind."""
        wiki = StubWiki(post_responder=lambda params: {
            'edit': {'result': 'Success'}})
        task = mw.Task.edit('Foo', 'text', 'summary')
        self.assertIsNone(task.succeeded)
        self.assertTrue(task.execute(wiki))
        self.assertTrue(task.succeeded)
        self.assertEqual(wiki.posts[0]['action'], 'edit')
    def test_custom_job(self):
        """Assert a job overrides the kind."""
        task = mw.Task('Foo', kind=mw.TaskKind.DELETE,
                       job=lambda wiki, task: False)
        self.assertFalse(task.execute(StubWiki()))
        self.assertFalse(task.succeeded)
    def test_factories(self):
        """Assert the factories fill in the kind."""
        self.assertIs(mw.Task.delete('A', 'r').kind, mw.TaskKind.DELETE)
        self.assertIs(mw.Task.undelete('A', 'r').kind, mw.TaskKind.UNDELETE)
        self.assertIs(mw.Task.add_text('A', 't', 's').kind,
                      mw.TaskKind.ADDTEXT)
        task = mw.Task.replace('A', 'x', 'y', 's')
        self.assertIs(task.kind, mw.TaskKind.REPLACE)
        self.assertEqual(task.extra, {'pattern': 'x', 'repl': 'y'})
        task = mw.Task.upload('/tmp/a.png', 'File:A.png', 'd', 's')
        self.assertEqual(task.extra['path'], '/tmp/a.png')

class TestConcurrentTaskRunner(TestCase):
    """Test ConcurrentTaskRunner."""
    def test_bounded(self):
        """Assert never more than max_parallel tasks run at once, and only
        the failures are reported.
        """
        gauge = Gauge()
        tasks = [mw.Task('Page {}'.format(i), job=gauge.job,
                         fail=(i % 7 == 0)) for i in range(100)]
        failed = mw.ConcurrentTaskRunner(StubWiki(), max_parallel=5).run(tasks)
        self.assertLessEqual(gauge.peak, 5)
        self.assertEqual(len(gauge.ran), 100)
        self.assertEqual(sorted(task.title for task in failed),
                         sorted('Page {}'.format(i)
                                for i in range(0, 100, 7)))
        self.assertTrue(all(task.succeeded for task in tasks
                            if task not in failed))
    def test_injected_executor(self):
        """Assert the bound holds with a bigger injected executor, and the
        executor is left running.
        """
        gauge = Gauge()
        tasks = [mw.Task(str(i), job=gauge.job) for i in range(30)]
        with ThreadPoolExecutor(max_workers=20) as executor:
            runner = mw.ConcurrentTaskRunner(StubWiki(), 3, executor)
            self.assertEqual(runner.run(tasks), [])
            self.assertLessEqual(gauge.peak, 3)
            self.assertEqual(executor.submit(lambda: 42).result(), 42)
    def test_exception_isolated(self):
        """Assert a crashing task is a failure and the rest still run."""
        gauge = Gauge()
        tasks = [mw.Task(str(i), job=gauge.job, explode=(i == 3))
                 for i in range(10)]
        failed = mw.ConcurrentTaskRunner(StubWiki(), 2).run(tasks)
        self.assertEqual([task.title for task in failed], ['3'])
        self.assertEqual(len(gauge.ran), 10)
    def test_cancel(self):
        """Assert cancel() stops new tasks and skipped tasks aren't
        reported.
        """
        runner = mw.ConcurrentTaskRunner(StubWiki(), 1)
        ran = []
        def job(wiki, task):
            ran.append(task.title)
            runner.cancel()
            return True
        tasks = [mw.Task(str(i), job=job) for i in range(10)]
        self.assertEqual(runner.run(tasks), [])
        self.assertEqual(ran, ['0'])
        self.assertTrue(runner.cancelled)
        self.assertTrue(all(task.succeeded is None for task in tasks[1:]))
    def test_mass_delete(self):
        """Assert mass_delete returns the titles that failed."""
        def respond(params):
            if params['title'] == 'B':
                return {'error': {'code': 'cantdelete', 'info': 'no'}}
            return {'delete': {'title': params['title']}}
        wiki = StubWiki(post_responder=respond, max_retries=2)
        runner = mw.ConcurrentTaskRunner(wiki, 2)
        self.assertEqual(runner.mass_delete(['A', 'B', 'C'], 'cleanup'),
                         ['B'])
        self.assertEqual(len([p for p in wiki.posts if p['title'] == 'B']), 2)
    def test_mass_edit(self):
        """Assert mass_edit edits every title."""
        wiki = StubWiki(post_responder=lambda params: {
            'edit': {'result': 'Success'}})
        runner = mw.ConcurrentTaskRunner(wiki, 4)
        titles = ['Page {}'.format(i) for i in range(12)]
        self.assertEqual(runner.mass_edit(titles, 'text', 'summary'), [])
        self.assertEqual(sorted(p['title'] for p in wiki.posts),
                         sorted(titles))
    def test_mass_restore(self):
        """Assert mass_restore undeletes."""
        wiki = StubWiki(post_responder=lambda params: {
            'undelete': {'title': params['title'], 'revisions': 1}})
        runner = mw.ConcurrentTaskRunner(wiki)
        self.assertEqual(runner.mass_restore(['A'], 'oops'), [])
        self.assertEqual(wiki.posts[0]['action'], 'undelete')
    def test_bad_max_parallel(self):
        """Assert an explicit bound below 1 is refused, not defaulted."""
        with self.assertRaises(ValueError):
            mw.ConcurrentTaskRunner(StubWiki(), max_parallel=0)
        runner = mw.ConcurrentTaskRunner(StubWiki())
        with self.assertRaises(ValueError):
            runner.run([], max_parallel=0)
