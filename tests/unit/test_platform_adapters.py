import json

import pytest

from bounty_scope.core.errors import AuthError, FetchError
from bounty_scope.core.models import NO_IN_SCOPE_TABLE, AuthConfig, PollOptions, ProgramData, ScopeElement, Snapshot
from bounty_scope.core.utils.http import HttpClient
from bounty_scope.core.utils.retry import RetryPolicy
from bounty_scope.platforms import bugcrowd, hackerone, immunefi, intigriti, yeswehack
from bounty_scope.platforms.registry import init_platforms
from bounty_scope.polling.runner import poll_platform

FAST = RetryPolicy(attempts=1, base_delay=0.0, jitter=0.0)


def _client(session):
    return HttpClient(policy=FAST, session=session)


# HackerOne

H1_LIST = f"{hackerone.API_URL}/hackers/programs?page%5Bsize%5D=100"
H1_SCOPE = f"{hackerone.API_URL}/hackers/programs/{{}}/structured_scopes?page%5Bnumber%5D=1&page%5Bsize%5D=100"


def _h1_program(handle, state="public_mode", bounties=True, submission="open"):
    return {
        "attributes": {
            "handle": handle,
            "state": state,
            "offers_bounties": bounties,
            "submission_state": submission,
        }
    }


def _h1_asset(identifier, eligible=True, bounty=True, asset_type="URL"):
    return {
        "attributes": {
            "asset_identifier": identifier,
            "asset_type": asset_type,
            "instruction": "line\nbreak",
            "eligible_for_submission": eligible,
            "eligible_for_bounty": bounty,
        }
    }


def test_hackerone_requires_username_and_token(fake_session):
    poller = hackerone.HackerOnePoller(_client(fake_session()))
    with pytest.raises(AuthError):
        poller.authenticate(AuthConfig(token="t"))
    with pytest.raises(AuthError):
        poller.authenticate(AuthConfig(username="u"))
    poller.authenticate(AuthConfig(username="u", token="t"))
    assert poller.http.session.headers["Authorization"].startswith("Basic ")


def test_hackerone_listing_filters_and_paginates(fake_session, response):
    page2 = H1_LIST + "&page%5Bnumber%5D=2"
    session = fake_session(
        {
            H1_LIST: [
                response(
                    200,
                    {
                        "data": [
                            _h1_program("acme"),
                            _h1_program("closed", submission="paused"),
                            _h1_program("vdp", bounties=False),
                        ],
                        "links": {"next": page2},
                    },
                )
            ],
            page2: [response(200, {"data": [_h1_program("private", state="soft_launched")], "links": {}})],
        }
    )
    poller = hackerone.HackerOnePoller(_client(session))
    assert poller.list_program_handles(PollOptions()) == ["acme", "vdp", "private"]
    assert poller.list_program_handles(PollOptions(bounty_only=True)) == ["acme", "private"]
    assert poller.list_program_handles(PollOptions(private_only=True)) == ["private"]


def test_hackerone_scope_split_and_bounty_filter(fake_session, response):
    payload = {
        "data": [
            _h1_asset("*.acme.com", asset_type="WILDCARD"),
            _h1_asset("docs.acme.com", bounty=False),
            _h1_asset("legacy.acme.com", eligible=False, bounty=False),
        ],
        "links": {},
    }
    session = fake_session({H1_SCOPE.format("acme"): [response(200, payload)]})
    poller = hackerone.HackerOnePoller(_client(session))

    program = poller.fetch_program_scope("acme", PollOptions())
    assert program.url == "https://hackerone.com/acme"
    assert [e.target for e in program.in_scope] == ["*.acme.com", "docs.acme.com"]
    assert [e.target for e in program.out_of_scope] == ["legacy.acme.com"]
    assert program.in_scope[0].description == "line  break"
    assert program.in_scope[0].is_bbp

    bbp = poller.fetch_program_scope("acme", PollOptions(bounty_only=True))
    assert [e.target for e in bbp.in_scope] == ["*.acme.com"]


def test_hackerone_placeholder_and_gone(fake_session, response):
    session = fake_session({H1_SCOPE.format("empty"): [response(200, {"data": [], "links": {}})]})
    poller = hackerone.HackerOnePoller(_client(session))
    assert poller.fetch_program_scope("empty", PollOptions()).in_scope[0].target == NO_IN_SCOPE_TABLE
    gone = poller.fetch_program_scope("deleted", PollOptions())
    assert gone.is_empty
    assert gone.url == "https://hackerone.com/deleted"



def test_hackerone_listing_must_be_an_object(fake_session, response):
    poller = hackerone.HackerOnePoller(_client(fake_session({H1_LIST: [response(200, [])]})))
    with pytest.raises(FetchError):
        poller.list_program_handles(PollOptions())


def test_hackerone_listing_failure_is_reported_by_the_run(fake_session, response):
    poller = hackerone.HackerOnePoller(_client(fake_session({H1_LIST: [response(200, "not an object")]})))
    result = poll_platform(poller, PollOptions())
    assert isinstance(result.error, FetchError)


# YesWeHack


def test_yeswehack_listing_and_scope(fake_session, response):
    session = fake_session(
        {
            f"{yeswehack.API_URL}?page=1": [
                response(
                    200,
                    {
                        "items": [
                            {"slug": "acme", "public": True, "bounty": True},
                            {"slug": "off", "disabled": True},
                            {"slug": "hidden", "public": False, "bounty": False},
                        ],
                        "pagination": {"nb_pages": 1},
                    },
                )
            ],
            f"{yeswehack.API_URL}/acme": [
                response(
                    200,
                    {
                        "bounty": True,
                        "scopes": [{"scope": "*.acme.fr", "scope_type": "web-application"}],
                        "out_of_scope": ["staging.acme.fr", {"ignored": True}],
                    },
                )
            ],
        }
    )
    poller = yeswehack.YesWeHackPoller(_client(session))
    assert poller.list_program_handles(PollOptions()) == ["acme", "hidden"]
    assert poller.list_program_handles(PollOptions(private_only=True)) == ["hidden"]
    assert poller.list_program_handles(PollOptions(bounty_only=True)) == ["acme"]

    program = poller.fetch_program_scope("acme", PollOptions())
    assert program.url == "https://yeswehack.com/programs/acme"
    assert program.in_scope[0].is_bbp
    assert [e.target for e in program.out_of_scope] == ["staging.acme.fr"]
    assert program.out_of_scope[0].category == "other"


def test_yeswehack_requires_token(fake_session):
    with pytest.raises(AuthError):
        yeswehack.YesWeHackPoller(_client(fake_session())).authenticate(AuthConfig())


# Immunefi


def test_extract_json_array_from_page():
    body = 'self.__next_f.push([1,"x"]){"bounties":[{"id":"acme","inviteOnly":false}],"other":1}'
    assert immunefi.extract_json_array(body, "bounties") == [{"id": "acme", "inviteOnly": False}]
    assert immunefi.extract_json_array(body, "assets") is None


def test_immunefi_listing_and_assets(fake_session, response):
    listing = "prefix " + json.dumps(
        {"bounties": [{"id": "acme", "inviteOnly": False}, {"id": "secret", "inviteOnly": True}]},
        separators=(",", ":"),
    )
    handle = f"{immunefi.PLATFORM_URL}/bug-bounty/acme/information/"
    assets = "junk " + json.dumps(
        {"assets": [{"url": "0xdeadbeef", "type": "smart_contract", "description": "Vault\nv2"}]},
        separators=(",", ":"),
    )
    session = fake_session(
        {
            f"{immunefi.PLATFORM_URL}/bug-bounty/": [response(200, text=listing)],
            handle: [response(200, text=assets)],
        }
    )
    poller = immunefi.ImmunefiPoller(_client(session))
    assert poller.list_program_handles(PollOptions()) == [handle]

    program = poller.fetch_program_scope(handle, PollOptions())
    assert program.url == handle
    element = program.in_scope[0]
    assert (element.target, element.category, element.description) == ("0xdeadbeef", "smart_contract", "Vault  v2")
    assert element.is_bbp


def test_immunefi_page_without_assets_is_an_error(fake_session, response):
    handle = f"{immunefi.PLATFORM_URL}/bug-bounty/broken/information/"
    session = fake_session({handle: [response(200, text="<html></html>")]})
    with pytest.raises(FetchError):
        immunefi.ImmunefiPoller(_client(session)).fetch_program_scope(handle, PollOptions())


# Bugcrowd


def test_bugcrowd_sets_session_cookie(fake_session):
    poller = bugcrowd.BugcrowdPoller(_client(fake_session()))
    poller.authenticate(AuthConfig(token="cookie-value"))
    assert poller.http.session.cookies.get("_bugcrowd_session") == "cookie-value"


def test_bugcrowd_listing_and_target_groups(fake_session, response):
    listing = bugcrowd.BASE_URL + bugcrowd.LIST_PATH.format(vdp="", page=1)
    session = fake_session(
        {
            listing: [
                response(
                    200,
                    {
                        "meta": {"totalPages": 1},
                        "programs": [
                            {"program_url": "/acme", "participation": "private", "vdp": False},
                            {"program_url": "/open", "participation": "public", "vdp": True},
                        ],
                    },
                )
            ],
            "https://bugcrowd.com/acme/target_groups": [
                response(
                    200,
                    {
                        "groups": [
                            {"in_scope": True, "targets_url": "/acme/targets/1"},
                            {"in_scope": False, "targets_url": "/acme/targets/2"},
                        ]
                    },
                )
            ],
            "https://bugcrowd.com/acme/targets/1": [
                response(200, {"targets": [{"name": "Main app", "uri": "https://app.acme.com", "category": "website"}]})
            ],
            "https://bugcrowd.com/acme/targets/2": [
                response(200, {"targets": [{"name": "status.acme.com", "uri": "", "category": "website"}]})
            ],
            "https://bugcrowd.com/open/target_groups": [response(200, {"groups": []})],
        }
    )
    poller = bugcrowd.BugcrowdPoller(_client(session))
    assert poller.list_program_handles(PollOptions(private_only=True)) == ["/acme"]

    program = poller.fetch_program_scope("/acme", PollOptions())
    assert program.url == "https://bugcrowd.com/acme"
    assert [e.target for e in program.in_scope] == ["https://app.acme.com"]
    assert program.in_scope[0].is_bbp
    assert [e.target for e in program.out_of_scope] == ["status.acme.com"]

    empty = poller.fetch_program_scope("/open", PollOptions())
    assert empty.in_scope[0].target == NO_IN_SCOPE_TABLE
    assert poller.fetch_program_scope("/deleted", PollOptions()).is_empty



def test_bugcrowd_prime_restores_bounty_flag_without_listing(fake_session, response):
    session = fake_session(
        {
            "https://bugcrowd.com/acme/target_groups": [
                response(200, {"groups": [{"in_scope": True, "targets_url": "/acme/targets/1"}]})
            ],
            "https://bugcrowd.com/acme/targets/1": [
                response(200, {"targets": [{"name": "api", "uri": "api.acme.com", "category": "api"}]})
            ],
        }
    )
    url = "https://bugcrowd.com/acme"
    previous = Snapshot.from_programs(
        "bc", [ProgramData(url=url, in_scope=[ScopeElement("api.acme.com", "", "api", is_bbp=True)])], {url: "/acme"}
    )
    poller = bugcrowd.BugcrowdPoller(_client(session))
    poller.prime(previous)

    program = poller.fetch_program_scope("/acme", PollOptions())
    assert [e.is_bbp for e in program.in_scope] == [True]


def test_bugcrowd_listing_clears_bounty_flag_for_vdp(fake_session, response):
    listing = bugcrowd.BASE_URL + bugcrowd.LIST_PATH.format(vdp="", page=1)
    session = fake_session(
        {listing: [response(200, {"meta": {"totalPages": 1}, "programs": [{"program_url": "/acme", "vdp": True}]})]}
    )
    url = "https://bugcrowd.com/acme"
    previous = Snapshot.from_programs(
        "bc", [ProgramData(url=url, in_scope=[ScopeElement("api.acme.com", is_bbp=True)])], {url: "/acme"}
    )
    poller = bugcrowd.BugcrowdPoller(_client(session))
    poller.prime(previous)
    poller.list_program_handles(PollOptions())
    assert "/acme" not in poller._bbp_handles


def test_bugcrowd_bad_page_count_is_a_fetch_error(fake_session, response):
    listing = bugcrowd.BASE_URL + bugcrowd.LIST_PATH.format(vdp="", page=1)
    session = fake_session({listing: [response(200, {"meta": {"totalPages": "abc"}, "programs": []})]})
    poller = bugcrowd.BugcrowdPoller(_client(session))
    with pytest.raises(FetchError):
        poller.list_program_handles(PollOptions())


# Intigriti

IT_LIST = f"{intigriti.API_URL}?statusId=3&limit={intigriti.PAGE_LIMIT}&offset=0"


def _it_record(program_id, handle, confidentiality=4, bounty=1000):
    return {
        "id": program_id,
        "confidentialityLevel": {"id": confidentiality},
        "maxBounty": {"value": bounty},
        "webLinks": {"detail": f"https://app.intigriti.com/programs/{handle}/detail?x=/programs/{handle}/detail"},
    }


def _it_session(fake_session, response):
    return fake_session(
        {
            IT_LIST: [
                response(
                    200,
                    {
                        "maxCount": 2,
                        "records": [
                            _it_record("id-1", "acme/acmeweb"),
                            _it_record("id-2", "beta/beta", confidentiality=2, bounty=0),
                        ],
                    },
                )
            ],
            f"{intigriti.API_URL}/id-1": [
                response(
                    200,
                    {
                        "domains": {
                            "content": [
                                {"endpoint": "*.acme.io", "type": {"value": "Wildcard"}, "tier": {"id": 3}},
                                {"endpoint": "docs.acme.io", "type": {"value": "Url"}, "tier": {"id": 1}},
                                {"endpoint": "old.acme.io", "type": {"value": "Url"}, "tier": {"id": 5}},
                            ]
                        }
                    },
                )
            ],
        }
    )


def test_intigriti_listing_filters(fake_session, response):
    poller = intigriti.IntigritiPoller(_client(_it_session(fake_session, response)))
    assert poller.list_program_handles(PollOptions()) == ["acme/acmeweb", "beta/beta"]
    assert poller.list_program_handles(PollOptions(private_only=True)) == ["beta/beta"]
    assert poller.list_program_handles(PollOptions(bounty_only=True)) == ["acme/acmeweb"]


def test_intigriti_scope_tiers(fake_session, response):
    poller = intigriti.IntigritiPoller(_client(_it_session(fake_session, response)))
    poller.list_program_handles(PollOptions())

    program = poller.fetch_program_scope("acme/acmeweb", PollOptions())
    assert program.url == "https://app.intigriti.com/researcher/programs/acme/acmeweb/detail"
    assert [e.target for e in program.in_scope] == ["*.acme.io", "docs.acme.io"]
    assert [e.is_bbp for e in program.in_scope] == [True, False]
    assert [e.target for e in program.out_of_scope] == ["old.acme.io"]

    bbp = poller.fetch_program_scope("acme/acmeweb", PollOptions(bounty_only=True))
    assert [e.target for e in bbp.in_scope] == ["*.acme.io"]


def test_intigriti_unknown_handle_resolves_to_empty(fake_session, response):
    session = _it_session(fake_session, response)
    poller = intigriti.IntigritiPoller(_client(session))
    assert poller.fetch_program_scope("gone/gone", PollOptions()).is_empty
    # the id map was rebuilt from the listing exactly once
    assert poller.fetch_program_scope("acme/acmeweb", PollOptions()).in_scope
    assert sum(1 for _, url in session.calls if url == IT_LIST) == 1


def test_registry_builds_every_platform():
    registry = init_platforms()
    assert set(registry.list_platforms()) >= {"h1", "bc", "it", "ywh", "immunefi", "test"}
    bc = registry.create("bc")
    assert bc.limiter is not None and bc.limiter.interval == 1.0
    assert registry.create("h1").limiter is None
    assert registry.create("h1", interval=2.0).limiter.interval == 2.0
    with pytest.raises(ValueError):
        registry.create("nope")
