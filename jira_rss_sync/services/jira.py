"""
Jira service module.

This module provides the JiraClient class, which talks to the Jira REST API
(v2) to look for issues that already carry an item's title and to create new
issues from TicketDraft dictionaries.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from jira_rss_sync.errors import TrackerCreateError, TrackerQueryError
from jira_rss_sync.models import TicketDraft

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 50


def escape_jql_string(value: str) -> str:
    """Escapes a value for use inside a double-quoted JQL string literal."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


@dataclass(frozen=True)
class ExactPhraseQuery:
    """
    A project-scoped exact phrase search on one text field.

    Jira's ``~`` operator does term matching unless the right-hand side is
    itself a quoted phrase, so the phrase is escaped twice: once for the text
    search syntax (where ``"`` and ``\\`` are special inside a phrase) and once
    for the JQL string literal that carries it.
    See https://confluence.atlassian.com/jirasoftwareserver/search-syntax-for-text-fields-939938747.html
    """

    project_key: str
    phrase: str
    field: str = "summary"

    def to_jql(self) -> str:
        quoted_phrase = '"' + escape_jql_string(self.phrase) + '"'
        return 'project = "{}" AND {} ~ "{}"'.format(
            escape_jql_string(self.project_key),
            self.field,
            escape_jql_string(quoted_phrase),
        )


class JiraClient:
    """Minimal Jira REST client for searching and creating issues."""

    def __init__(
        self,
        base_url: str,
        username: str,
        api_token: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (username, api_token)
        self.session.headers.update({"Accept": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/rest/api/2/{path}"

    def find_existing(self, project_key: str, title: str) -> List[str]:
        """Returns the keys of issues in the project whose summary matches the title as a phrase."""
        jql = ExactPhraseQuery(project_key=project_key, phrase=title).to_jql()
        logger.info('Searching for existing issue "%s" in project %s', title, project_key)

        try:
            resp = self.session.get(
                self._url("search"),
                params={"jql": jql, "fields": "summary", "maxResults": SEARCH_PAGE_SIZE},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            issues: List[Dict[str, Any]] = resp.json().get("issues", [])
        except (requests.RequestException, ValueError) as e:
            logger.error("Issue search failed for JQL: %s", jql)
            raise TrackerQueryError(f"Issue search failed for {title!r}: {e}") from e

        keys = [issue.get("key", "") for issue in issues]
        if len(keys) > 1:
            matches = [
                f"{issue.get('key', '')} ({issue.get('fields', {}).get('summary', '')})"
                for issue in issues
            ]
            logger.warning('Found multiple issues that match "%s": %s', title, ", ".join(matches))
        return keys

    def create_issue(self, draft: TicketDraft) -> str:
        """Creates an issue and returns its key."""
        payload = {
            "fields": {
                "project": {"key": draft["project_key"]},
                "issuetype": {"name": draft["issue_type"]},
                "summary": draft["title"],
                "description": draft["description"],
                "labels": list(draft["labels"]),
            }
        }

        try:
            resp = self.session.post(self._url("issue"), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise TrackerCreateError(f"Unable to create issue {draft['title']!r}: {e}") from e

        if resp.status_code >= 400:
            raise TrackerCreateError(
                f"Unable to create issue {draft['title']!r}: HTTP {resp.status_code} {resp.text}"
            )

        try:
            created = resp.json()
        except ValueError as e:
            raise TrackerCreateError(f"Unreadable create response for {draft['title']!r}") from e

        logger.debug("%s: %s", created.get("key"), created.get("self"))
        return created.get("key", "")
