"""Integration tests for SimulatedApi against an in-memory database."""
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from profilestub.application.services.simulated_api import SimulatedApi, generate_secret
from profilestub.core.exceptions import NotFoundError, StructureError

CREATED = "2020-01-02 03:04:05"


def _ids(api):
    database_id = api.get_member_id("Test")
    return database_id, api.get_member_id("Test", database_id)


def test_profile_crud(api, clock):
    """Create a profile and a subprofile, then update both."""
    database_id, collection_id = _ids(api)
    profile = {"Email": "rm@wyz.biz", "LastName": "Muit", "Birthdate": "1974-04-27"}

    profile_id = api.create_profile(database_id, profile)
    stored = api.fetch_profile(profile_id)
    assert stored.fields == profile
    assert stored.created == stored.modified == CREATED
    assert stored.removed is None

    # The same data again gives a second profile
    profile2_id = api.create_profile(database_id, profile)
    assert profile2_id > profile_id
    assert api.count_profiles(database_id) == 2

    subprofile = {"Score": 6, "ActionTime": "2020-04-27 14:15:34"}
    subprofile_id = api.create_subprofile(profile_id, collection_id, subprofile)
    stored_sub = api.fetch_subprofile(subprofile_id)
    assert stored_sub.fields == subprofile
    assert stored_sub.profile_id == profile_id
    assert stored_sub.created == CREATED

    clock.advance()
    api.update_profile_fields(profile_id, {"LastName": ""})
    assert api.count_profiles(database_id) == 2
    stored = api.fetch_profile(profile_id)
    assert stored.fields == {**profile, "LastName": ""}
    assert stored.created == CREATED
    assert stored.modified > stored.created

    api.update_subprofile_fields(subprofile_id, {"Score": 0})
    assert api.count_subprofiles(collection_id) == 1
    stored_sub = api.fetch_subprofile(subprofile_id)
    assert stored_sub.fields == {**subprofile, "Score": 0}
    assert stored_sub.modified > stored_sub.created

    assert api.update_log == [
        f"POST database/{database_id}/profiles",
        f"POST database/{database_id}/profiles",
        f"POST profile/{profile_id}/subprofiles/{collection_id}",
        f"PUT profile/{profile_id}/fields",
        f"PUT subprofile/{subprofile_id}/fields",
    ]
    api.reset_update_log()
    assert api.update_log == []


def test_defaults_and_field_matching(api):
    database_id, collection_id = _ids(api)

    profile_id = api.create_profile(database_id, {"email": "A@b.com", "Unknown": "x"})
    assert api.fetch_profile(profile_id).fields == {
        "Email": "A@b.com",
        "LastName": "",
        "Birthdate": "",
    }

    subprofile_id = api.create_subprofile(profile_id, collection_id)
    assert api.fetch_subprofile(subprofile_id).fields == {"Score": -1, "ActionTime": ""}


def test_values_are_coerced(api):
    database_id, collection_id = _ids(api)
    profile_id = api.create_profile(database_id, {"LastName": 2.99, "Birthdate": "yesterday"})
    assert api.fetch_profile(profile_id).fields["LastName"] == "2.99"
    assert api.fetch_profile(profile_id).fields["Birthdate"] == "2020-01-01"

    subprofile_id = api.create_subprofile(profile_id, collection_id, {"Score": "12abc", "ActionTime": 999})
    assert api.fetch_subprofile(subprofile_id).fields == {
        "Score": 12,
        "ActionTime": "0000-00-00 00:00:00",
    }


def test_api_dict(api):
    database_id, _ = _ids(api)
    profile_id = api.create_profile(database_id, {"Email": "a@b.com"})
    result = api.fetch_profile(profile_id).to_api_dict()
    assert result["ID"] == str(profile_id)
    assert result["database"] == str(database_id)
    assert result["removed"] is False
    assert re.fullmatch(r"[0-9a-f]{28}", result["secret"])


def test_secrets_are_unique():
    secrets = {generate_secret() for _ in range(50)}
    assert len(secrets) == 50
    assert all(len(secret) == 28 for secret in secrets)


class TestRemoval:

    def test_remove_profile_is_idempotent(self, api, clock):
        database_id, _ = _ids(api)
        profile_id = api.create_profile(database_id, {"Email": "a@b.com"})

        clock.advance(10)
        assert api.remove_profile(profile_id) is True
        assert api.remove_profile(profile_id) is False
        assert api.remove_profile(12345) is False

        profile = api.fetch_profile(profile_id)
        assert profile.removed == "2020-01-02 03:04:15"
        assert profile.modified == CREATED
        assert api.count_profiles(database_id, include_removed=False) == 0
        assert api.update_log[-3:] == [
            f"DELETE profile/{profile_id}",
            f"DELETE profile/{profile_id}",
            "DELETE profile/12345",
        ]

    def test_removed_profile_keeps_subprofiles_by_default(self, api):
        database_id, collection_id = _ids(api)
        profile_id = api.create_profile(database_id)
        subprofile_id = api.create_subprofile(profile_id, collection_id)

        api.remove_profile(profile_id)
        assert api.fetch_subprofile(subprofile_id).removed is None
        # Subprofiles can still be added to a removed profile
        api.create_subprofile(profile_id, collection_id)

    def test_cascade_removal(self, structure, settings, clock):
        cascade = settings.model_copy(update={"cascade_profile_removal": True})
        api = SimulatedApi(structure, settings=cascade, clock=clock)
        try:
            database_id, collection_id = _ids(api)
            profile_id = api.create_profile(database_id)
            first = api.create_subprofile(profile_id, collection_id)
            second = api.create_subprofile(profile_id, collection_id)

            api.remove_profile(profile_id)
            assert api.fetch_subprofile(first).is_removed
            assert api.fetch_subprofile(second).is_removed
        finally:
            api.close()

    def test_remove_subprofile(self, api):
        database_id, collection_id = _ids(api)
        profile_id = api.create_profile(database_id)
        subprofile_id = api.create_subprofile(profile_id, collection_id)

        assert api.remove_subprofile(subprofile_id) is True
        assert api.remove_subprofile(subprofile_id) is False
        assert api.fetch_subprofile(subprofile_id).is_removed
        assert api.fetch_profile(profile_id).removed is None


class TestNotFound:

    def test_unknown_database(self, api):
        with pytest.raises(NotFoundError, match="Database 999 does not exist."):
            api.create_profile(999, {})
        with pytest.raises(NotFoundError):
            api.fetch_profiles(999)
        with pytest.raises(NotFoundError):
            api.count_profiles(999)

    def test_unknown_records(self, api):
        _, collection_id = _ids(api)
        with pytest.raises(NotFoundError, match="Profile 999 does not exist."):
            api.update_profile_fields(999, {"Email": "x"})
        with pytest.raises(NotFoundError, match="Subprofile 999 does not exist."):
            api.update_subprofile_fields(999, {"Score": 1})
        with pytest.raises(NotFoundError, match="Profile 999 does not exist."):
            api.create_subprofile(999, collection_id)
        assert api.fetch_profile(999) is None
        assert api.fetch_subprofile(999) is None
        assert api.update_log == []

    def test_collection_of_other_database(self, settings, clock):
        api = SimulatedApi(
            {"A": {"collections": {"C": {}}}, "B": {"collections": {"D": {}}}},
            settings=settings,
            clock=clock,
        )
        try:
            profile_id = api.create_profile(api.get_member_id("A"))
            other_collection = api.get_member_id("D", api.get_member_id("B"))
            with pytest.raises(NotFoundError, match=f"Collection {other_collection} does not exist."):
                api.create_subprofile(profile_id, other_collection)
            with pytest.raises(NotFoundError):
                api.create_subprofile(profile_id, 999)
        finally:
            api.close()


class TestListing:

    def test_pagination(self, api):
        database_id, _ = _ids(api)
        ids = [api.create_profile(database_id, {"LastName": f"Name{i}"}) for i in range(5)]

        assert [p.id for p in api.fetch_profiles(database_id)] == ids
        assert [p.id for p in api.fetch_profiles(database_id, start=3)] == ids[3:]
        assert [p.id for p in api.fetch_profiles(database_id, start=1, limit=2)] == ids[1:3]
        assert api.fetch_profiles(database_id, limit=0) == []
        assert api.fetch_profiles(database_id, start=-1) == []

    def test_default_page_limit(self, structure, settings, clock):
        limited = settings.model_copy(update={"default_page_limit": 2})
        api = SimulatedApi(structure, settings=limited, clock=clock)
        try:
            database_id, _ = _ids(api)
            for _ in range(3):
                api.create_profile(database_id)
            assert len(api.fetch_profiles(database_id)) == 2
        finally:
            api.close()

    def test_filters(self, api):
        database_id, _ = _ids(api)
        muit = api.create_profile(database_id, {"LastName": "Muit"})
        api.create_profile(database_id, {"LastName": "Other"})
        removed = api.create_profile(database_id, {"LastName": "muit"})
        api.remove_profile(removed)

        assert [p.id for p in api.fetch_profiles(database_id, {"lastname": "MUIT"})] == [muit, removed]
        assert [
            p.id for p in api.fetch_profiles(database_id, {"LastName": "Muit"}, include_removed=False)
        ] == [muit]
        # Unknown filter names are ignored
        assert len(api.fetch_profiles(database_id, {"Nope": "x"})) == 3

    def test_subprofiles(self, api):
        database_id, collection_id = _ids(api)
        first = api.create_profile(database_id)
        second = api.create_profile(database_id)
        a = api.create_subprofile(first, collection_id, {"Score": 1})
        b = api.create_subprofile(second, collection_id, {"Score": 2})
        c = api.create_subprofile(first, collection_id, {"Score": 1})

        assert [s.id for s in api.fetch_subprofiles(collection_id)] == [a, b, c]
        assert [s.id for s in api.fetch_subprofiles(collection_id, {"score": "1"})] == [a, c]
        assert [s.id for s in api.fetch_subprofiles_for_profile(first, collection_id)] == [a, c]
        assert api.fetch_subprofiles_for_profile(999, collection_id) == []

        api.remove_subprofile(c)
        assert api.count_subprofiles(collection_id, include_removed=False) == 2
        assert [
            s.id for s in api.fetch_subprofiles_for_profile(first, collection_id, include_removed=False)
        ] == [a]


class TestLifecycle:

    def test_structure_accessors(self, api):
        database_id, collection_id = _ids(api)
        structure = api.get_databases_structure()
        assert structure[database_id]["name"] == "Test"
        assert structure[database_id]["collections"][collection_id]["name"] == "Test"
        assert api.get_known_values()["database_name"] == ("Test",)
        assert api.get_member_id("Nope") == 0

    def test_reset_clears_records(self, api):
        database_id, _ = _ids(api)
        api.create_profile(database_id)
        api.reset()
        assert api.count_profiles(database_id) == 0

    def test_empty_description(self, settings):
        api = SimulatedApi(settings=settings)
        try:
            assert api.get_databases_structure() == {}
        finally:
            api.close()

    def test_invalid_description(self, settings):
        with pytest.raises(StructureError, match="Key -1 is a negative integer."):
            SimulatedApi({-1: {}}, settings=settings)

    def test_concurrent_creates(self, api):
        database_id, _ = _ids(api)
        with ThreadPoolExecutor(max_workers=4) as executor:
            ids = list(executor.map(lambda i: api.create_profile(database_id, {"LastName": str(i)}), range(20)))

        assert len(set(ids)) == 20
        assert api.count_profiles(database_id) == 20

    def test_concurrent_reads_and_writes(self, api):
        database_id, collection_id = _ids(api)
        profile_id = api.create_profile(database_id)

        def work(i):
            if i % 2:
                api.create_subprofile(profile_id, collection_id, {"Score": i})
            else:
                api.update_profile_fields(profile_id, {"LastName": str(i)})
            return len(api.fetch_subprofiles_for_profile(profile_id, collection_id))

        with ThreadPoolExecutor(max_workers=4) as executor:
            counts = list(executor.map(work, range(40)))

        assert all(0 <= count <= 20 for count in counts)
        assert api.count_subprofiles(collection_id) == 20
        assert api.fetch_profile(profile_id) is not None


class TestModifiedTime:

    def test_update_within_the_same_second(self, api):
        database_id, collection_id = _ids(api)
        profile_id = api.create_profile(database_id)
        subprofile_id = api.create_subprofile(profile_id, collection_id)

        api.update_profile_fields(profile_id, {"LastName": "a"})
        assert api.fetch_profile(profile_id).modified == "2020-01-02 03:04:06"
        api.update_profile_fields(profile_id, {"LastName": "b"})
        profile = api.fetch_profile(profile_id)
        assert profile.modified == "2020-01-02 03:04:07"
        assert profile.created == CREATED

        api.update_subprofile_fields(subprofile_id, {"Score": 3})
        assert api.fetch_subprofile(subprofile_id).modified == "2020-01-02 03:04:06"

    def test_update_after_time_passed(self, api, clock):
        database_id, _ = _ids(api)
        profile_id = api.create_profile(database_id)

        clock.advance(60)
        api.update_profile_fields(profile_id, {"LastName": "a"})
        assert api.fetch_profile(profile_id).modified == "2020-01-02 03:05:05"

    def test_update_with_system_clock(self, structure, settings):
        api = SimulatedApi(structure, settings=settings)
        try:
            database_id, collection_id = _ids(api)
            profile_id = api.create_profile(database_id)
            subprofile_id = api.create_subprofile(profile_id, collection_id)

            api.update_profile_fields(profile_id, {"LastName": ""})
            api.update_subprofile_fields(subprofile_id, {"Score": 0})

            profile = api.fetch_profile(profile_id)
            subprofile = api.fetch_subprofile(subprofile_id)
            assert profile.modified > profile.created
            assert subprofile.modified > subprofile.created
        finally:
            api.close()


class TestLargeNumbers:

    def test_integers_are_clamped_before_storage(self, api):
        database_id, collection_id = _ids(api)
        profile_id = api.create_profile(database_id)

        subprofile_id = api.create_subprofile(
            profile_id, collection_id, {"Score": "99999999999999999999"}
        )
        assert api.fetch_subprofile(subprofile_id).fields["Score"] == 2**63 - 1

        matches = api.fetch_subprofiles(collection_id, {"Score": 10**30})
        assert [subprofile.id for subprofile in matches] == [subprofile_id]

        api.update_subprofile_fields(subprofile_id, {"Score": -1e30})
        assert api.fetch_subprofile(subprofile_id).fields["Score"] == -(2**63)
