import unittest
from datetime import datetime, timezone
from types import SimpleNamespace


def _gh_issue(number, **overrides):
    data = dict(
        id=1000 + number,
        number=number,
        title=f"Issue {number}",
        body=None,
        state="open",
        labels=[SimpleNamespace(name="bug"), SimpleNamespace(name="ui")],
        user=SimpleNamespace(login="alice", html_url="https://github.com/alice"),
        updated_at=datetime(2020, 1, 2, tzinfo=timezone.utc),
        html_url=f"https://github.com/acme/app/issues/{number}",
        repository_url="https://api.github.com/repos/acme/app",
        comments=2,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


class _StubGh:
    def __init__(self):
        self.queries = []
        self.user_calls = []
        self.repo_calls = []

    def search_issues(self, query):
        self.queries.append(query)
        return iter([_gh_issue(1), _gh_issue(2, state="closed", labels=[])])

    def get_user(self, login):
        self.user_calls.append(login)
        return SimpleNamespace(login=login, name="Alice Doe", html_url=f"https://github.com/{login}")

    def get_organization(self, org):
        return SimpleNamespace(get_members=lambda: [SimpleNamespace(login="alice"), SimpleNamespace(login="bob")])

    def get_repo(self, full_name, lazy=False):
        self.repo_calls.append((full_name, lazy))
        comment = SimpleNamespace(
            id=42,
            body="first!",
            user=SimpleNamespace(login="bob", html_url="https://github.com/bob"),
            created_at=datetime(2020, 1, 3, tzinfo=timezone.utc),
            html_url="https://github.com/acme/app/issues/1#issuecomment-42",
        )
        issue = SimpleNamespace(get_comments=lambda: iter([comment]))
        return SimpleNamespace(get_issue=lambda number: issue)


def _client(gh=None, max_elapsed=5.0):
    from issuesync.services.github_client import GitHubClient
    from issuesync.services.retry import ResilientInvoker

    # Skip __init__ so no PyGithub connection is built
    client = GitHubClient.__new__(GitHubClient)
    client.gh = gh or _StubGh()
    client.invoker = ResilientInvoker(max_elapsed, randomization=0)
    client._users = {}
    return client


class GitHubClientTests(unittest.TestCase):
    def test_search_returns_snapshots(self):
        client = _client()

        issues = client.search_issues("org:acme updated:>=2020-01-01T00:00:00+00:00")

        self.assertEqual(client.gh.queries, ["org:acme updated:>=2020-01-01T00:00:00+00:00"])
        self.assertEqual(len(issues), 2)
        first = issues[0]
        self.assertEqual(first.id, 1001)
        self.assertEqual(first.body, "")
        self.assertEqual(first.labels, ("bug", "ui"))
        self.assertEqual(first.label_string, "bug,ui")
        self.assertEqual(first.user.login, "alice")
        self.assertEqual(first.repository, "acme/app")
        self.assertEqual(first.comment_count, 2)
        self.assertEqual(issues[1].label_string, "")

    def test_get_user_is_cached(self):
        client = _client()

        user = client.get_user("alice")
        client.get_user("alice")

        self.assertEqual(user.name, "Alice Doe")
        self.assertEqual(client.gh.user_calls, ["alice"])

    def test_org_members(self):
        self.assertEqual(_client().get_org_members("acme"), ["alice", "bob"])

    def test_list_comments(self):
        from issuesync.models import SourceIssue, SourceUser

        client = _client()
        issue = SourceIssue(
            id=1001, number=1, title="t", body="", state="open", labels=(),
            user=SourceUser(login="alice"), repository="acme/app", comment_count=1,
        )

        comments = client.list_comments(issue)

        self.assertEqual(client.gh.repo_calls, [("acme/app", True)])
        self.assertEqual([(c.id, c.body, c.user.login) for c in comments], [(42, "first!", "bob")])

    def test_terminal_error_is_wrapped(self):
        from github import GithubException

        from issuesync.exceptions import SourceRequestError

        gh = _StubGh()

        def failing(query):
            raise GithubException(422, {"message": "Validation Failed"})

        gh.search_issues = failing
        client = _client(gh, max_elapsed=0)

        with self.assertRaises(SourceRequestError) as ctx:
            client.search_issues("bad")

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertIn("Validation Failed", ctx.exception.detail)


class RepositoryFromUrlTests(unittest.TestCase):
    def test_parses_api_url(self):
        from issuesync.services.github_client import _repository_from_url

        self.assertEqual(_repository_from_url("https://api.github.com/repos/acme/app"), "acme/app")
        self.assertIsNone(_repository_from_url(None))
        self.assertIsNone(_repository_from_url("https://example.com/other"))


if __name__ == "__main__":
    unittest.main()
