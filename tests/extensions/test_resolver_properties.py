"""
Tests for extman version resolution.

Covers tag preference, the branch fallback, prompting rules and the
update decision for tag-installed extensions.
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings, strategies as st

from conftest import FakeRemote, ScriptedDecisionSource

from extman.core.exceptions import NetworkError, NotFoundError, UserCancelled
from extman.extensions.resolver import VersionResolver

REPO = "owner/demo"


@st.composite
def tag_list_strategy(draw):
    """Generate distinct tag names, newest first."""
    return draw(
        st.lists(
            st.from_regex(r"v[0-9]{1,2}\.[0-9]{1,2}\.[0-9]{1,2}", fullmatch=True),
            min_size=1,
            max_size=8,
            unique=True,
        )
    )


class TestTagResolution:
    """Tests for picking tags."""

    @given(tag_list_strategy())
    @settings(max_examples=50, deadline=None)
    @pytest.mark.asyncio
    async def test_existing_tag_hint_never_prompts(self, tags):
        """A hint naming an existing tag is used as-is."""
        remote = FakeRemote()
        remote.add_tags(REPO, *tags)
        decisions = ScriptedDecisionSource()
        resolver = VersionResolver(remote, decisions)

        resolved = await resolver.pick_version(REPO, tag=tags[-1])

        assert resolved.tag == tags[-1]
        assert resolved.branch is None
        assert decisions.asked == []

    @given(tag_list_strategy())
    @settings(max_examples=50, deadline=None)
    @pytest.mark.asyncio
    async def test_default_proposal_is_newest_tag(self, tags):
        remote = FakeRemote()
        remote.add_tags(REPO, *tags)
        decisions = ScriptedDecisionSource()
        resolver = VersionResolver(remote, decisions)

        resolved = await resolver.pick_version(REPO)

        assert resolved.tag == tags[0]
        assert len(decisions.asked) == (1 if len(tags) > 1 else 0)

    @pytest.mark.asyncio
    async def test_missing_tag_prompts_once(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v2.0", "v1.0")
        decisions = ScriptedDecisionSource(selections=["v1.0"])
        resolver = VersionResolver(remote, decisions)

        resolved = await resolver.pick_version(REPO, tag="v9.9")

        assert resolved.tag == "v1.0"
        assert decisions.asked == [("select", f"{REPO}@v9.9 not found, please select a tag")]

    @pytest.mark.asyncio
    async def test_missing_tag_prompts_even_with_single_tag(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v1.0")
        decisions = ScriptedDecisionSource(selections=[UserCancelled])
        resolver = VersionResolver(remote, decisions)

        with pytest.raises(UserCancelled):
            await resolver.pick_version(REPO, tag="v9.9")

        assert decisions.asked == [("select", f"{REPO}@v9.9 not found, please select a tag")]

    @pytest.mark.asyncio
    async def test_tags_win_over_branch_hint(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v1.0")
        remote.add_branches(REPO, "main", "dev")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        resolved = await resolver.pick_version(REPO, branch="dev")

        assert resolved.tag == "v1.0"
        assert ("branches", REPO) not in remote.calls

    @pytest.mark.asyncio
    async def test_download_url_comes_from_tag(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v1.0")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        resolved = await resolver.pick_version(REPO)

        assert resolved.download_url == remote.tag_url(REPO, "v1.0")
        assert resolved.commit.sha == "sha-v1.0"

    @pytest.mark.asyncio
    async def test_cancelled_selection_propagates(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v2.0", "v1.0")
        resolver = VersionResolver(
            remote, ScriptedDecisionSource(selections=[UserCancelled])
        )

        with pytest.raises(UserCancelled):
            await resolver.pick_version(REPO)

    @pytest.mark.asyncio
    async def test_listings_are_cached(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v1.0")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        await resolver.pick_version(REPO)
        await resolver.pick_version(REPO)

        assert remote.calls.count(("tags", REPO)) == 1


class TestBranchResolution:
    """Tests for the branch fallback of repositories without tags."""

    @pytest.mark.asyncio
    async def test_single_branch_needs_no_prompt(self):
        remote = FakeRemote()
        remote.add_branches(REPO, "main")
        decisions = ScriptedDecisionSource()
        resolver = VersionResolver(remote, decisions)

        resolved = await resolver.pick_version(REPO)

        assert resolved.branch == "main"
        assert resolved.tag is None
        assert resolved.download_url == f"https://example.test/{REPO}/zipball/main"
        assert decisions.asked == []

    @pytest.mark.asyncio
    async def test_default_branch_is_proposed(self):
        remote = FakeRemote()
        remote.add_branches(REPO, "dev", "main", default="main")
        decisions = ScriptedDecisionSource()
        resolver = VersionResolver(remote, decisions)

        resolved = await resolver.pick_version(REPO)

        assert resolved.branch == "main"
        assert [kind for kind, _ in decisions.asked] == ["select"]

    @pytest.mark.asyncio
    async def test_version_hint_names_a_branch(self):
        remote = FakeRemote()
        remote.add_branches(REPO, "main", "dev")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        resolved = await resolver.pick_version(REPO, tag="dev")

        assert resolved.branch == "dev"

    @pytest.mark.asyncio
    async def test_no_tags_and_no_branches(self):
        remote = FakeRemote()
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        with pytest.raises(NotFoundError):
            await resolver.pick_version(REPO)

    @pytest.mark.asyncio
    async def test_branch_commit(self):
        remote = FakeRemote()
        remote.add_branches(REPO, "main")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        assert (await resolver.branch_commit(REPO, "main")).sha == "sha-main"
        assert await resolver.branch_commit(REPO, "gone") is None


class TestNewerTag:
    """Tests for the update decision of tag-installed extensions."""

    @given(tag_list_strategy())
    @settings(max_examples=50, deadline=None)
    @pytest.mark.asyncio
    async def test_newest_installed_means_no_update(self, tags):
        remote = FakeRemote()
        remote.add_tags(REPO, *tags)
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        assert await resolver.newer_tag(REPO, tags[0]) is None

    @pytest.mark.asyncio
    async def test_older_installed_tag_updates(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v2.0", "v1.0")
        now = datetime.now(timezone.utc)
        remote.commit_dates = {"sha-v2.0": now, "sha-v1.0": now - timedelta(days=3)}
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        newest = await resolver.newer_tag(REPO, "v1.0")

        assert newest.name == "v2.0"

    @pytest.mark.asyncio
    async def test_first_listed_but_older_tag_is_ignored(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v1.0", "v2.0")
        now = datetime.now(timezone.utc)
        remote.commit_dates = {"sha-v1.0": now - timedelta(days=3), "sha-v2.0": now}
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        assert await resolver.newer_tag(REPO, "v2.0") is None
        assert (await resolver.newer_tag(REPO, "v2.0", verify_order=False)).name == "v1.0"

    @pytest.mark.asyncio
    async def test_missing_dates_fall_back_to_position(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v2.0", "v1.0")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        assert (await resolver.newer_tag(REPO, "v1.0")).name == "v2.0"

    @pytest.mark.asyncio
    async def test_installed_tag_gone_from_remote(self):
        remote = FakeRemote()
        remote.add_tags(REPO, "v3.0")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        assert (await resolver.newer_tag(REPO, "v1.0")).name == "v3.0"

    @pytest.mark.asyncio
    async def test_no_tags_means_no_update(self):
        resolver = VersionResolver(FakeRemote(), ScriptedDecisionSource())

        assert await resolver.newer_tag(REPO, "v1.0") is None

    @pytest.mark.asyncio
    async def test_remote_failure_propagates(self):
        remote = FakeRemote()
        remote.failures[REPO] = NetworkError("boom")
        resolver = VersionResolver(remote, ScriptedDecisionSource())

        with pytest.raises(NetworkError):
            await resolver.newer_tag(REPO, "v1.0")
