"""Repair of the "!binary" tag emitted by some Ruby YAML writers.

Psych (the Ruby YAML serializer) emits "!binary" where it means "!!binary".
Parsed as-is, the value is a local tag that safe loaders reject, and even
lenient loaders would not base64-decode it, which breaks checksum fields.
"""

import re

# Only rewrite tags not already preceded by "!" so "!!binary" is left alone
_BINARY_TAG_RE = re.compile(rb'([^!])!binary \|-\n')


def fix_binary_tags(data: bytes) -> bytes:
    """Return manifest bytes with "!binary |-" rewritten to "!!binary |-"."""
    return _BINARY_TAG_RE.sub(rb'\1!!binary |-\n', data)
