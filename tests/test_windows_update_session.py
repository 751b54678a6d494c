"""
Tests for the Windows Update Agent COM installer.

The COM object graph is replaced with small fakes; every object that the
installer obtains is checked against the releaser calls.
"""

# pylint: disable=redefined-outer-name,invalid-name,too-few-public-methods

import contextlib
from unittest.mock import Mock

import pytest

from src.winmaint.operations.windows_update_session import (
    REBOOT_GRACE_SECONDS,
    SEARCH_CRITERIA,
    ComHandleScope,
    WindowsUpdateSessionInstaller,
    release_com_object,
)


class FakeDispatchWrapper:
    """Mimics the attribute layout of a pywin32 CDispatch."""

    def __init__(self):
        self._oleobj_ = object()


class FakeUpdate:
    """A single IUpdate."""

    def __init__(self, title, eula_accepted=True, downloaded=False):
        self.Title = title
        self.EulaAccepted = eula_accepted
        self.IsDownloaded = downloaded
        self.eula_calls = 0

    def AcceptEula(self):
        self.eula_calls += 1
        self.EulaAccepted = True


class FakeCollection:
    """IUpdateCollection."""

    def __init__(self, updates=None):
        self.items = list(updates or [])

    @property
    def Count(self):
        return len(self.items)

    def Item(self, index):
        return self.items[index]

    def Add(self, update):
        self.items.append(update)
        return len(self.items) - 1


class FakeDownloader:
    """IUpdateDownloader that marks everything it is given as downloaded."""

    def __init__(self):
        self.Updates = None
        self.download_calls = 0

    def Download(self):
        self.download_calls += 1
        for update in self.Updates.items:
            update.IsDownloaded = True


class FakeInstaller:
    """IUpdateInstaller with a configurable reboot flag."""

    def __init__(self, reboot_required, error=None):
        self.Updates = None
        self._reboot_required = reboot_required
        self._error = error

    def Install(self):
        if self._error:
            raise self._error
        return Mock(RebootRequired=self._reboot_required, ResultCode=2)


class FakeSearcher:
    """IUpdateSearcher returning a fixed result."""

    def __init__(self, updates, error=None):
        self._updates = updates
        self._error = error
        self.criteria = None

    def Search(self, criteria):
        self.criteria = criteria
        if self._error:
            raise self._error
        return Mock(Updates=FakeCollection(self._updates))


class FakeSession:
    """IUpdateSession handing out the other fakes."""

    def __init__(self, searcher, installer):
        self.searcher = searcher
        self.downloader = FakeDownloader()
        self.installer = installer

    def CreateUpdateSearcher(self):
        return self.searcher

    def CreateUpdateDownloader(self):
        return self.downloader

    def CreateUpdateInstaller(self):
        return self.installer


class FakeComWorld:
    """Dispatcher recording every object it creates."""

    def __init__(self, updates=(), reboot_required=False, search_error=None, install_error=None):
        self.session = FakeSession(
            FakeSearcher(list(updates), search_error),
            FakeInstaller(reboot_required, install_error),
        )
        self.collections = []

    def dispatch(self, prog_id):
        if prog_id == "Microsoft.Update.Session":
            return self.session
        collection = FakeCollection()
        self.collections.append(collection)
        return collection


@pytest.fixture
def releaser():
    """Releaser recording each handle passed to it."""
    return Mock()


def installer_for(world, releaser, sleep=None, rebooter=None):
    """Build an installer wired to a fake COM world."""
    return WindowsUpdateSessionInstaller(
        dispatcher=world.dispatch,
        releaser=releaser,
        apartment=contextlib.nullcontext,
        sleep=sleep or Mock(),
        rebooter=rebooter or Mock(),
    )


def released(releaser):
    """Objects passed to the releaser, in call order."""
    return [call_args[0][0] for call_args in releaser.call_args_list]


class TestComHandleScope:
    """Tests for the handle scope itself."""

    def test_releases_in_reverse_order_once(self, releaser):
        """Handles are released newest first and only once."""
        first, second = object(), object()
        with ComHandleScope(releaser) as handles:
            handles.acquire("first", first)
            handles.acquire("second", second)

        assert released(releaser) == [second, first]
        handles.release_all()
        assert releaser.call_count == 2

    def test_releases_on_exception(self, releaser):
        """An exception inside the scope still releases everything."""
        handle = object()
        with pytest.raises(RuntimeError):
            with ComHandleScope(releaser) as handles:
                handles.acquire("session", handle)
                raise RuntimeError("search failed")

        assert released(releaser) == [handle]

    def test_release_error_does_not_stop_others(self):
        """A failing release is logged and the remaining handles are released."""
        first, second = object(), object()
        releaser = Mock(side_effect=[OSError("gone"), None])
        with ComHandleScope(releaser) as handles:
            handles.acquire("first", first)
            handles.acquire("second", second)

        assert releaser.call_count == 2
        assert handles.acquired == []

    def test_release_com_object_drops_interface(self):
        """The pywin32 wrapper loses its IDispatch reference."""
        wrapper = FakeDispatchWrapper()

        release_com_object(wrapper)

        assert wrapper.__dict__["_oleobj_"] is None


class TestInstallPending:
    """Tests for the search, download and install sequence."""

    def test_no_updates_returns_false(self, releaser):
        """Nothing pending returns False and releases session and searcher."""
        world = FakeComWorld()
        installer = installer_for(world, releaser)

        assert installer.install_pending(auto_reboot=False) is False
        assert world.session.searcher.criteria == SEARCH_CRITERIA
        assert released(releaser) == [world.session.searcher, world.session]

    def test_full_install_releases_every_handle_once(self, releaser):
        """Each handle obtained is released exactly once."""
        updates = [FakeUpdate("KB1"), FakeUpdate("KB2", downloaded=True)]
        world = FakeComWorld(updates, reboot_required=False)
        installer = installer_for(world, releaser)

        assert installer.install_pending(auto_reboot=False) is False

        download_collection, install_collection = world.collections
        expected = {
            id(world.session),
            id(world.session.searcher),
            id(download_collection),
            id(world.session.downloader),
            id(install_collection),
            id(world.session.installer),
        }
        handles = released(releaser)
        assert len(handles) == len(expected)
        assert {id(handle) for handle in handles} == expected

    def test_accepts_eula_and_downloads_missing(self, releaser):
        """Unaccepted licences are accepted and only missing downloads are queued."""
        pending = FakeUpdate("KB1", eula_accepted=False)
        ready = FakeUpdate("KB2", downloaded=True)
        world = FakeComWorld([pending, ready])
        installer_for(world, releaser).install_pending(auto_reboot=False)

        download_collection, install_collection = world.collections
        assert pending.eula_calls == 1
        assert ready.eula_calls == 0
        assert download_collection.items == [pending]
        assert world.session.downloader.download_calls == 1
        assert install_collection.items == [pending, ready]

    def test_skips_download_when_all_downloaded(self, releaser):
        """No downloader is created when every update is already downloaded."""
        world = FakeComWorld([FakeUpdate("KB1", downloaded=True)])
        installer_for(world, releaser).install_pending(auto_reboot=False)

        assert world.session.downloader.download_calls == 0
        assert world.session.downloader not in released(releaser)

    def test_reboot_required_without_auto_reboot(self, releaser):
        """The installer's reboot flag is returned and no reboot happens."""
        world = FakeComWorld([FakeUpdate("KB1")], reboot_required=True)
        sleep, rebooter = Mock(), Mock()
        installer = installer_for(world, releaser, sleep, rebooter)

        assert installer.install_pending(auto_reboot=False) is True
        sleep.assert_not_called()
        rebooter.assert_not_called()

    def test_reboot_required_with_auto_reboot(self, releaser):
        """With auto reboot the grace period is waited out, then Windows reboots."""
        world = FakeComWorld([FakeUpdate("KB1")], reboot_required=True)
        sleep, rebooter = Mock(), Mock()
        installer = installer_for(world, releaser, sleep, rebooter)

        assert installer.install_pending(auto_reboot=True) is True
        sleep.assert_called_once_with(REBOOT_GRACE_SECONDS)
        rebooter.assert_called_once()

    def test_no_reboot_needed_with_auto_reboot(self, releaser):
        """Auto reboot does nothing when the installer needs no reboot."""
        world = FakeComWorld([FakeUpdate("KB1")], reboot_required=False)
        rebooter = Mock()
        installer = installer_for(world, releaser, rebooter=rebooter)

        assert installer.install_pending(auto_reboot=True) is False
        rebooter.assert_not_called()

    def test_search_error_returns_false_and_releases(self, releaser):
        """A failing search is reported as False after releasing what was acquired."""
        world = FakeComWorld(search_error=RuntimeError("0x8024402C"))
        installer = installer_for(world, releaser)

        assert installer.install_pending(auto_reboot=False) is False
        assert released(releaser) == [world.session.searcher, world.session]

    def test_install_error_returns_false_and_releases(self, releaser):
        """A failing install is reported as False and every handle is released."""
        world = FakeComWorld([FakeUpdate("KB1")], install_error=RuntimeError("0x80070005"))
        installer = installer_for(world, releaser)

        assert installer.install_pending(auto_reboot=False) is False
        assert releaser.call_count == 6

    def test_dispatch_failure_releases_nothing(self, releaser):
        """If the session cannot be created there is nothing to release."""
        installer = WindowsUpdateSessionInstaller(
            dispatcher=Mock(side_effect=OSError("class not registered")),
            releaser=releaser,
            apartment=contextlib.nullcontext,
        )

        assert installer.install_pending(auto_reboot=False) is False
        releaser.assert_not_called()


class TrackedCollection(FakeCollection):
    """Search result collection recording when it is freed."""

    def __init__(self, updates, events):
        super().__init__(updates)
        self._events = events

    def __del__(self):
        self._events.append("search collection freed")


class FakeSearchResult:
    """ISearchResult."""

    def __init__(self, updates):
        self.Updates = updates


class TrackedSearcher:
    """IUpdateSearcher whose result collection reports when it is freed."""

    def __init__(self, events):
        self._events = events

    def Search(self, criteria):  # pylint: disable=unused-argument
        return FakeSearchResult(TrackedCollection([FakeUpdate("KB1")], self._events))


class FailingInstaller:
    """IUpdateInstaller raising a new error on every install."""

    def __init__(self):
        self.Updates = None

    def Install(self):
        raise RuntimeError("0x80240022")


class TestApartmentLifetime:
    """Tests for COM object lifetime relative to the COM apartment."""

    def test_failed_install_frees_objects_before_apartment_closes(self, releaser):
        """Objects held by a failed install are freed while COM is still initialized."""
        events = []

        @contextlib.contextmanager
        def apartment():
            events.append("initialize")
            try:
                yield
            finally:
                events.append("uninitialize")

        world = FakeComWorld()
        world.session.searcher = TrackedSearcher(events)
        world.session.installer = FailingInstaller()
        installer = WindowsUpdateSessionInstaller(
            dispatcher=world.dispatch,
            releaser=releaser,
            apartment=apartment,
            sleep=Mock(),
            rebooter=Mock(),
        )

        assert installer.install_pending(auto_reboot=False) is False
        assert events == ["initialize", "search collection freed", "uninitialize"]

    def test_apartment_failure_returns_false(self, releaser):
        """A COM initialization error is reported as False."""

        @contextlib.contextmanager
        def apartment():
            raise OSError("CoInitialize failed")
            yield  # pylint: disable=unreachable

        installer = WindowsUpdateSessionInstaller(
            dispatcher=Mock(), releaser=releaser, apartment=apartment
        )

        assert installer.install_pending(auto_reboot=False) is False
        releaser.assert_not_called()
