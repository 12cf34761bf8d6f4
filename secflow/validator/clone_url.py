"""Parsing of GitHub clone URLs into owner and repository.

Examples of recognized URLs:
    https://github.com/owner/repo.git
    https://github.com/owner/repo
    git@github.com:owner/repo.git
    git@github.com:owner/repo
"""

from dataclasses import dataclass

from secflow.errors import UnrecognizedCloneURLError

RECOGNIZED_PREFIXES = ("https://github.com/", "git@github.com:")


@dataclass(frozen=True)
class ParsedCloneURL:
    owner: str
    repo: str


@dataclass(frozen=True)
class UnrecognizedCloneURL:
    clone_url: str
    reason: str


def parse_clone_url(clone_url: str) -> ParsedCloneURL | UnrecognizedCloneURL:
    """Split a clone URL into owner and repository.

    Prefixes are checked in order. After stripping the prefix and a single trailing ".git", the remainder
    must hold a non-empty owner and a non-empty repository segment.
    """
    for prefix in RECOGNIZED_PREFIXES:
        if not clone_url.startswith(prefix):
            continue

        path = clone_url.removeprefix(prefix).removesuffix(".git")
        owner, _, rest = path.partition("/")
        repo = rest.split("/", 1)[0]
        if not owner:
            return UnrecognizedCloneURL(clone_url, "missing owner segment")
        if not repo:
            return UnrecognizedCloneURL(clone_url, "missing repository segment")
        return ParsedCloneURL(owner=owner, repo=repo)

    return UnrecognizedCloneURL(clone_url, "unrecognized URL form")


def extract_owner(clone_url: str) -> str:
    """Return the owner of a clone URL.

    Raises:
        UnrecognizedCloneURLError: If the URL matches no recognized form
    """
    match parse_clone_url(clone_url):
        case ParsedCloneURL(owner=owner):
            return owner
        case UnrecognizedCloneURL(reason=reason):
            raise UnrecognizedCloneURLError(clone_url, reason)
