from dataclasses import dataclass


@dataclass(frozen=True)
class RewriteRule:
    """
    Single leading-prefix substitution applied to the path component.

    A path starting with ``public_prefix`` has exactly that leading prefix
    replaced by ``upstream_prefix``. Later occurrences of the prefix inside
    the path are left alone, and paths that do not match pass through
    unchanged. Trailing slashes are taken verbatim from the configuration.
    """

    public_prefix: str = "/api/"
    upstream_prefix: str = "/api/dashboard/"

    def matches(self, path: str) -> bool:
        return bool(self.public_prefix) and path.startswith(self.public_prefix)

    def rewrite_path(self, path: str) -> str:
        if not self.matches(path):
            return path
        return self.upstream_prefix + path[len(self.public_prefix):]

    def rewrite(self, path: str, query: str = "") -> str:
        """Rewrite ``path`` and reattach ``query`` untouched."""
        rewritten = self.rewrite_path(path)
        if query:
            return f"{rewritten}?{query}"
        return rewritten

