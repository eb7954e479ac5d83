"""Property-based tests for fingerprint determinism using hypothesis."""

from hypothesis import given
from hypothesis import strategies as st

from stepcache.config import Settings
from stepcache.core.digest import combine_hashes
from stepcache.core.fingerprint.engine import fingerprint
from stepcache.core.interfaces import DependencyRecord, DependencyResult, FlagSet

_names = st.from_regex(r"calc[A-Z][a-z]{0,6}", fullmatch=True)
_hashes = st.from_regex(r"[0-9a-f]{8}", fullmatch=True)
_closures = st.dictionaries(_names, _hashes, min_size=1, max_size=8)

# No filesystem inputs are involved, so the folders never need to exist
SETTINGS = Settings(main_folder="/nonexistent/stepcache")


class ListResolver:
    def __init__(self, records, ignore=(), monitor=()):
        self.result = DependencyResult(records=tuple(records), flags=FlagSet.from_iterables(ignore, monitor))

    def get_dependencies(self, name, direction="in", include_self=True, graph=None, **options):
        return self.result


def _records(closure):
    return [DependencyRecord(call=k, hash=v, func=k, type="calc") for k, v in closure.items()]


@given(closure=_closures, data=st.data())
def test_record_order_does_not_matter(closure, data):
    """Any permutation of the closure gives the same fingerprint."""
    records = _records(closure)
    shuffled = data.draw(st.permutations(records))

    first = fingerprint("target", settings=SETTINGS, resolver=ListResolver(records))
    second = fingerprint("target", settings=SETTINGS, resolver=ListResolver(shuffled))

    assert first == second
    assert first.value == combine_hashes([closure[k] for k in sorted(closure)], "md5")


@given(closure=_closures, data=st.data(), new_hash=_hashes)
def test_ignored_hash_never_matters(closure, data, new_hash):
    """Rewriting the hash of an ignored step leaves the fingerprint unchanged."""
    ignored = data.draw(st.sampled_from(sorted(closure)))
    changed = dict(closure, **{ignored: new_hash})

    before = fingerprint("target", settings=SETTINGS, resolver=ListResolver(_records(closure), ignore=[ignored]))
    after = fingerprint("target", settings=SETTINGS, resolver=ListResolver(_records(changed), ignore=[ignored]))

    assert before == after


@given(closure=_closures, data=st.data())
def test_monitor_always_beats_ignore(closure, data):
    """A step both ignored and monitored counts exactly as if only monitored."""
    flagged = data.draw(st.sampled_from(sorted(closure)))

    both = fingerprint(
        "target", settings=SETTINGS, resolver=ListResolver(_records(closure), ignore=[flagged], monitor=[flagged])
    )
    plain = fingerprint("target", settings=SETTINGS, resolver=ListResolver(_records(closure), monitor=[flagged]))

    assert both == plain


@given(closure=_closures)
def test_breakdown_reproduces_value(closure):
    result = fingerprint("target", details=True, settings=SETTINGS, resolver=ListResolver(_records(closure)))

    assert combine_hashes(result.breakdown.values(), "md5") == result.value
