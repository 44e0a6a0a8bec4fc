import os

from conftest import bump_mtime, write_file

from tools.zerodrift.cache import CacheManager, ConfigSurfaceResolver, GlobSurfaceResolver, compute_config_hash
from tools.zerodrift.steps import CacheStrategy, StepId


class ReversedResolver(ConfigSurfaceResolver):
    def __init__(self, inner):
        self.inner = inner

    def resolve(self, pattern):
        return list(reversed(self.inner.resolve(pattern)))


class BrokenResolver(ConfigSurfaceResolver):
    def resolve(self, pattern):
        raise OSError("unreadable base directory")


def test_glob_resolver_expands_wildcards_and_literals(repo):
    resolver = GlobSurfaceResolver(str(repo))
    found = [os.path.relpath(path, str(repo)).replace(os.sep, "/") for path in resolver.resolve("tsconfig*.json")]
    assert found == ["tsconfig.build.json", "tsconfig.json"]
    nested = resolver.resolve("apps/*/tsconfig.json")
    assert [os.path.basename(os.path.dirname(path)) for path in nested] == ["backend-api"]
    assert resolver.resolve("turbo.json") == [os.path.join(str(repo), "turbo.json")]
    assert resolver.resolve("missing.json") == []
    assert resolver.resolve("packages/*/tsconfig.json") == []


def test_hash_is_deterministic_and_order_independent(repo):
    patterns = ["tsconfig*.json", "apps/*/tsconfig.json", "package.json"]
    first = compute_config_hash(str(repo), patterns)
    second = compute_config_hash(str(repo), patterns)
    reversed_order = compute_config_hash(
        str(repo),
        list(reversed(patterns)),
        resolver=ReversedResolver(GlobSurfaceResolver(str(repo))),
    )
    assert first == second == reversed_order
    assert len(first) == 64


def test_hash_changes_on_content_change(repo):
    before = compute_config_hash(str(repo), ["package.json"])
    write_file(repo, "package.json", "{\"name\": \"demo\", \"private\": true}\n")
    assert compute_config_hash(str(repo), ["package.json"]) != before


def test_hash_changes_on_mtime_change(repo):
    before = compute_config_hash(str(repo), ["turbo.json"])
    bump_mtime(os.path.join(str(repo), "turbo.json"))
    assert compute_config_hash(str(repo), ["turbo.json"]) != before


def test_unmatched_patterns_contribute_nothing(repo):
    empty = compute_config_hash(str(repo), [])
    assert compute_config_hash(str(repo), ["no-such-dir/*/tsconfig.json", "nope.json"]) == empty
    assert compute_config_hash(str(repo), ["package.json", "no-such-dir/*/x.json"]) == compute_config_hash(
        str(repo), ["package.json"]
    )


def test_resolver_errors_degrade_to_empty_surface(repo):
    assert compute_config_hash(str(repo), ["package.json"], resolver=BrokenResolver()) == compute_config_hash(str(repo), [])


def test_force_none_and_minimal_always_invalidate(repo):
    cache = CacheManager(str(repo))
    assert cache.record_success(StepId.LINT, CacheStrategy.CONFIG_AWARE)
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.CONFIG_AWARE) is False
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.CONFIG_AWARE, force=True) is True
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.NONE) is True
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.MINIMAL) is True


def test_smart_strategy_falls_through_to_always_invalidate(repo):
    # "smart" is declared by the quick preset but has no decision logic of
    # its own; it must behave exactly like "none" until that is settled.
    cache = CacheManager(str(repo))
    assert cache.record_success(StepId.LINT, CacheStrategy.CONFIG_AWARE)
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.SMART) is True
    assert cache.should_invalidate(StepId.LINT, "eventually") is True
    assert cache.record_success(StepId.TYPE_CHECK, CacheStrategy.SMART) is False
    assert not os.path.exists(cache.entry_path(StepId.TYPE_CHECK))


def test_missing_entry_is_a_miss(repo):
    cache = CacheManager(str(repo))
    assert cache.read_digest(StepId.BUILD) == ""
    assert cache.should_invalidate(StepId.BUILD, CacheStrategy.CONFIG_AWARE) is True


def test_entry_file_holds_only_the_digest(repo):
    cache = CacheManager(str(repo))
    assert cache.record_success(StepId.BUILD, CacheStrategy.CONFIG_AWARE)
    path = os.path.join(str(repo), ".validation-cache", "build.hash")
    assert cache.entry_path(StepId.BUILD) == path
    with open(path, "r", encoding="utf-8") as handle:
        text = handle.read()
    assert text == cache.config_hash(StepId.BUILD)
    assert all(ch in "0123456789abcdef" for ch in text)


def test_non_config_aware_strategies_record_nothing(repo):
    cache = CacheManager(str(repo))
    for strategy in (CacheStrategy.NONE, CacheStrategy.MINIMAL, CacheStrategy.SMART):
        assert cache.record_success(StepId.LINT, strategy) is False
    assert not os.path.isdir(cache.cache_dir)


def test_config_edit_invalidates_only_the_owning_step(repo):
    cache = CacheManager(str(repo))
    for step_id in (StepId.LINT, StepId.TYPE_CHECK, StepId.TEST):
        assert cache.record_success(step_id, CacheStrategy.CONFIG_AWARE)
    write_file(repo, "eslint.config.js", "export default [{rules: {}}];\n")
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.CONFIG_AWARE) is True
    assert cache.should_invalidate(StepId.TYPE_CHECK, CacheStrategy.CONFIG_AWARE) is False
    assert cache.should_invalidate(StepId.TEST, CacheStrategy.CONFIG_AWARE) is False


def test_new_file_in_surface_invalidates(repo):
    cache = CacheManager(str(repo))
    assert cache.record_success(StepId.TYPE_CHECK, CacheStrategy.CONFIG_AWARE)
    write_file(repo, "packages/types/tsconfig.json", "{}\n")
    assert cache.should_invalidate(StepId.TYPE_CHECK, CacheStrategy.CONFIG_AWARE) is True


def test_write_failure_is_not_fatal(repo, capsys):
    blocker = write_file(repo, "not-a-dir", "file in the way\n")
    cache = CacheManager(str(repo), cache_dir=os.path.join(blocker, "cache"))
    assert cache.record_success(StepId.LINT, CacheStrategy.CONFIG_AWARE) is False
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.CONFIG_AWARE) is True
    assert "cache_write_failed step=lint" in capsys.readouterr().out


def test_clear_removes_every_entry(repo):
    cache = CacheManager(str(repo))
    for step_id in (StepId.LINT, StepId.BUILD):
        assert cache.record_success(step_id, CacheStrategy.CONFIG_AWARE)
    assert cache.clear() is True
    assert not os.path.exists(cache.cache_dir)
    assert cache.should_invalidate(StepId.LINT, CacheStrategy.CONFIG_AWARE) is True
    assert cache.should_invalidate(StepId.BUILD, CacheStrategy.CONFIG_AWARE) is True
    assert cache.clear() is True


def test_relative_cache_dir_is_rooted_at_repo(repo):
    cache = CacheManager(str(repo), cache_dir="tmp/zd-cache")
    assert cache.cache_dir == os.path.join(str(repo), "tmp", "zd-cache")
