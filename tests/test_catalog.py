"""Tests for the Permission/Action Catalog."""

import asyncio

import pytest

from capability_bus.catalog.registry import (
    DEFAULT_PRESENTATIONS,
    CapabilityCatalog,
    SimulatedPermissionProvider,
    UnknownRequestKind,
)
from capability_bus.models.request import PermissionStatus, RequestKind


class TestCatalogRegistry:
    def test_every_kind_registered_by_default(self):
        catalog = CapabilityCatalog()
        assert set(catalog.kinds) == set(RequestKind)
        for kind in RequestKind:
            assert catalog.get(kind).presentation == DEFAULT_PRESENTATIONS[kind]

    def test_unknown_kind_raises(self):
        catalog = CapabilityCatalog()
        catalog.unregister(RequestKind.CALENDAR_ACCESS)
        with pytest.raises(UnknownRequestKind):
            catalog.get(RequestKind.CALENDAR_ACCESS)

    def test_register_replaces_entry(self):
        catalog = CapabilityCatalog()

        async def probe():
            return PermissionStatus.GRANTED

        async def action():
            return True

        presentation = DEFAULT_PRESENTATIONS[RequestKind.CAMERA_ACCESS].model_copy(
            update={"title": "Scan Tickets"}
        )
        catalog.register(RequestKind.CAMERA_ACCESS, presentation, probe, action)
        assert catalog.get(RequestKind.CAMERA_ACCESS).presentation.title == "Scan Tickets"
        assert asyncio.run(catalog.probe(RequestKind.CAMERA_ACCESS)) == PermissionStatus.GRANTED

    def test_rating_presentation_uses_later(self):
        presentation = DEFAULT_PRESENTATIONS[RequestKind.APP_RATING]
        assert presentation.dismiss_text == "Later"
        assert DEFAULT_PRESENTATIONS[RequestKind.CAMERA_ACCESS].dismiss_text == "Dismiss"


class TestProbeAndAction:
    def test_probe_reads_provider(self):
        provider = SimulatedPermissionProvider(
            statuses={RequestKind.PHOTOS_ACCESS: PermissionStatus.DENIED}
        )
        catalog = CapabilityCatalog(provider=provider)
        assert asyncio.run(catalog.probe(RequestKind.PHOTOS_ACCESS)) == PermissionStatus.DENIED
        assert asyncio.run(catalog.probe(RequestKind.CONTACTS_ACCESS)) == PermissionStatus.UNDETERMINED
        assert provider.status_calls == [RequestKind.PHOTOS_ACCESS, RequestKind.CONTACTS_ACCESS]

    def test_probe_failure_is_undetermined(self):
        provider = SimulatedPermissionProvider(
            statuses={RequestKind.PHOTOS_ACCESS: PermissionStatus.GRANTED}
        )
        provider.fail_probe(RequestKind.PHOTOS_ACCESS)
        catalog = CapabilityCatalog(provider=provider)
        assert asyncio.run(catalog.probe(RequestKind.PHOTOS_ACCESS)) == PermissionStatus.UNDETERMINED

        provider.fail_probe(RequestKind.PHOTOS_ACCESS, failing=False)
        assert asyncio.run(catalog.probe(RequestKind.PHOTOS_ACCESS)) == PermissionStatus.GRANTED

    def test_action_applies_user_choice(self):
        provider = SimulatedPermissionProvider(user_choices={RequestKind.CAMERA_ACCESS: False})
        catalog = CapabilityCatalog(provider=provider)

        assert asyncio.run(catalog.perform_action(RequestKind.CAMERA_ACCESS)) is False
        assert asyncio.run(catalog.probe(RequestKind.CAMERA_ACCESS)) == PermissionStatus.DENIED
        assert asyncio.run(catalog.perform_action(RequestKind.LOCATION_ACCESS)) is True
        assert asyncio.run(catalog.probe(RequestKind.LOCATION_ACCESS)) == PermissionStatus.GRANTED

    def test_consent_dialog_only_shown_once(self):
        provider = SimulatedPermissionProvider(user_choices={RequestKind.CAMERA_ACCESS: False})
        catalog = CapabilityCatalog(provider=provider)
        asyncio.run(catalog.perform_action(RequestKind.CAMERA_ACCESS))

        provider.set_user_choice(RequestKind.CAMERA_ACCESS, True)
        assert asyncio.run(catalog.perform_action(RequestKind.CAMERA_ACCESS)) is False

    def test_action_failure_counts_as_denial(self):
        provider = SimulatedPermissionProvider()
        provider.fail_action(RequestKind.MICROPHONE_ACCESS)
        catalog = CapabilityCatalog(provider=provider)
        assert asyncio.run(catalog.perform_action(RequestKind.MICROPHONE_ACCESS)) is False
        assert asyncio.run(catalog.probe(RequestKind.MICROPHONE_ACCESS)) == PermissionStatus.UNDETERMINED

    def test_app_rating_never_touches_provider(self):
        prompts = []

        async def prompter():
            prompts.append(True)
            return True

        provider = SimulatedPermissionProvider()
        catalog = CapabilityCatalog(provider=provider, review_prompter=prompter)
        assert asyncio.run(catalog.probe(RequestKind.APP_RATING)) == PermissionStatus.UNDETERMINED
        assert asyncio.run(catalog.perform_action(RequestKind.APP_RATING)) is True
        assert prompts == [True]
        assert provider.status_calls == []
        assert provider.request_calls == []

    def test_open_settings_never_grants(self):
        opened = []

        def opener():
            opened.append(True)
            return True

        catalog = CapabilityCatalog(settings_opener=opener)
        assert catalog.open_settings() is False
        assert opened == [True]

    def test_open_settings_failure_is_contained(self):
        def opener():
            raise OSError("no settings app")

        catalog = CapabilityCatalog(settings_opener=opener)
        assert catalog.open_settings() is False
