# tests/test_contact_extractor.py
from __future__ import annotations

import asyncio

import httpx
import respx
from httpx import Response

from enrichment.config import ExtractionConfig, FetchConfig
from enrichment.extract import contacts as contacts_mod
from enrichment.extract.contacts import ContactExtractor
from enrichment.extract.records import (
    SOURCE_GENERATED,
    SOURCE_REGISTRATION,
    SOURCE_WEBSITE,
    ContactRecord,
)
from enrichment.extract.social import match_social_url
from enrichment.fetch.client import Fetcher
from enrichment.fetch.throttle import DomainThrottle
from enrichment.models import Opportunity
from enrichment.resolve.whois import RegistrationRecord

CFG = ExtractionConfig(
    max_candidate_pages=10,
    page_concurrency=1,
    max_email_length=100,
    generated_local_parts=("info", "contact"),
    whois_enabled=True,
)

# ---- test utilities ------------------------------------------------------------------


def _extract(opp, *, dns, registration, force=False, fetch_cfg=None, cfg=CFG):
    async def run():
        fetcher = Fetcher(DomainThrottle(0), config=fetch_cfg or FetchConfig(max_retries=0))
        try:
            extractor = ContactExtractor(fetcher, registration=registration, dns=dns, config=cfg)
            return await extractor.extract(opp, force=force)
        finally:
            await fetcher.aclose()

    return asyncio.run(run())


def _catch_all(router, status: int = 404):
    return router.route().mock(return_value=Response(status))


# ---- website stage -------------------------------------------------------------------


def test_homepage_with_email_and_social_stops_early(fakes):
    home = """
    <p>Mail <a href="mailto:editor@acme.test">the editor</a>.</p>
    <a href="https://twitter.com/acmehq">Twitter</a>
    """
    with respx.mock(assert_all_called=False) as router:
        router.get("https://acme.test/").mock(return_value=Response(200, text=home))
        rest = _catch_all(router)
        res = _extract(
            Opportunity(id=1, url="https://acme.test/"),
            dns=fakes.Dns(),
            registration=fakes.Registration(),
        )
    assert rest.call_count == 0
    assert res.changed is True
    assert res.record.emails == ("editor@acme.test",)
    assert [p.username for p in res.record.social_profiles] == ["acmehq"]
    assert res.record.sources == (SOURCE_WEBSITE,)
    assert res.record.last_updated is not None
    assert res.stages == [SOURCE_WEBSITE]


def test_candidate_pages_scanned_until_enough(fakes):
    contact = """
    <h1>Contact us</h1>
    <p>Write to hello@acme.test</p>
    <form>
      <input name="name"><input type="email" name="email"><textarea name="msg"></textarea>
    </form>
    """
    with respx.mock(assert_all_called=False) as router:
        router.get("https://acme.test/").mock(return_value=Response(200, text="<p>Welcome</p>"))
        contact_route = router.get("https://acme.test/contact").mock(
            return_value=Response(200, text=contact)
        )
        about_route = router.get("https://acme.test/about").mock(
            return_value=Response(200, text="<p>about@acme.test</p>")
        )
        _catch_all(router)
        res = _extract(
            Opportunity(id=2, url="https://acme.test/"),
            dns=fakes.Dns(),
            registration=fakes.Registration(),
        )
    assert contact_route.call_count == 1
    assert about_route.call_count == 0
    assert res.record.emails == ("hello@acme.test",)
    assert res.record.contact_forms == ("https://acme.test/contact",)
    assert res.record.confidence == "high"
    assert res.pages_fetched == 2


def test_non_homepage_main_url_still_discovers_from_homepage(fakes):
    with respx.mock(assert_all_called=False) as router:
        main = router.get("https://acme.test/blog/post-1").mock(
            return_value=Response(200, text="<p>A post</p>")
        )
        home = router.get("https://acme.test/").mock(
            return_value=Response(200, text='<a href="/crew">Meet the team</a>')
        )
        crew = router.get("https://acme.test/crew").mock(
            return_value=Response(200, text="<p>crew@acme.test</p>")
        )
        _catch_all(router)
        res = _extract(
            Opportunity(id=3, url="https://acme.test/blog/post-1"),
            dns=fakes.Dns(),
            registration=fakes.Registration(),
        )
    assert main.call_count == 1
    assert home.call_count == 1
    assert crew.call_count == 1
    assert res.record.emails == ("crew@acme.test",)


# ---- fallbacks -----------------------------------------------------------------------


def test_network_outage_falls_back_to_registration_record(fakes):
    registration = fakes.Registration(
        {"site.test": RegistrationRecord(domain="site.test", emails=["admin@site.test"])}
    )
    with respx.mock(assert_all_called=False) as router:
        outage = httpx.ConnectTimeout("timed out")
        route = router.route(host="site.test").mock(side_effect=outage)
        res = _extract(
            Opportunity(id=4, url="https://site.test/"),
            dns=fakes.Dns(),
            registration=registration,
        )
    # homepage plus every seed path was attempted
    assert route.call_count == 1 + 7
    assert res.record.emails == ("admin@site.test",)
    details = res.record.to_dict()["extractionDetails"]
    assert details["source"] == SOURCE_REGISTRATION
    assert details["confidence"] == "high"
    assert res.stages == [SOURCE_WEBSITE, SOURCE_REGISTRATION]


def test_generated_addresses_only_with_mx_and_low_confidence(fakes):
    with respx.mock(assert_all_called=False) as router:
        router.get("https://acme.test/").mock(return_value=Response(200, text="<p>hi</p>"))
        _catch_all(router)
        res = _extract(
            Opportunity(id=5, url="https://acme.test/"),
            dns=fakes.Dns(mx={"acme.test"}),
            registration=fakes.Registration(),
        )
    assert res.record.emails == ("info@acme.test", "contact@acme.test")
    assert res.record.generated_emails == res.record.emails
    assert res.record.confidence == "low"
    assert res.record.source == SOURCE_GENERATED
    assert res.stages[-1] == SOURCE_GENERATED


def test_nothing_found_leaves_record_unchanged(fakes):
    with respx.mock(assert_all_called=False) as router:
        _catch_all(router)
        res = _extract(
            Opportunity(id=6, url="https://empty.test/"),
            dns=fakes.Dns(),
            registration=fakes.Registration(),
        )
    assert res.changed is False
    assert res.record.emails == ()
    assert res.record.last_updated is None


def test_unreachable_main_url_skips_candidates(fakes):
    registration = fakes.Registration()
    with respx.mock(assert_all_called=False) as router:
        route = router.route(host="gone.test").mock(
            side_effect=httpx.ConnectError("[Errno -2] Name or service not known")
        )
        res = _extract(
            Opportunity(id=7, url="https://gone.test/"),
            dns=fakes.Dns(),
            registration=registration,
        )
    assert route.call_count == 1
    assert registration.calls == ["gone.test"]
    assert res.changed is False


# ---- merge / idempotence -------------------------------------------------------------


def test_satisfied_record_is_skipped_unless_forced(fakes):
    existing = ContactRecord.build(emails=["old@acme.test"], source=SOURCE_WEBSITE)
    opp = Opportunity(id=8, url="https://acme.test/", contact_info=existing)
    with respx.mock(assert_all_called=False) as router:
        route = _catch_all(router)
        res = _extract(opp, dns=fakes.Dns(), registration=fakes.Registration())
    assert res.skipped is True
    assert res.record is existing
    assert route.call_count == 0


def test_new_data_is_merged_into_existing_record(fakes):
    tw = match_social_url("https://twitter.com/acmehq")
    existing = ContactRecord.build(social_profiles=[tw], source=SOURCE_WEBSITE)
    opp = Opportunity(id=9, url="https://acme.test/", contact_info=existing)
    with respx.mock(assert_all_called=False) as router:
        router.get("https://acme.test/").mock(
            return_value=Response(200, text="<p>team@acme.test</p>")
        )
        rest = _catch_all(router)
        res = _extract(opp, dns=fakes.Dns(), registration=fakes.Registration())
    # email plus the stored social profile is already enough
    assert rest.call_count == 0
    assert res.record.emails == ("team@acme.test",)
    assert res.record.social_profiles == (tw,)


def test_second_forced_run_is_idempotent(fakes):
    home = '<a href="mailto:a@acme.test">a</a><a href="https://facebook.com/acmeco">fb</a>'
    with respx.mock(assert_all_called=False) as router:
        router.get("https://acme.test/").mock(return_value=Response(200, text=home))
        _catch_all(router)
        first = _extract(
            Opportunity(id=10, url="https://acme.test/"),
            dns=fakes.Dns(),
            registration=fakes.Registration(),
        )
        opp = Opportunity(id=10, url="https://acme.test/", contact_info=first.record)
        second = _extract(opp, dns=fakes.Dns(), registration=fakes.Registration(), force=True)
    assert first.changed is True
    assert second.changed is False
    assert second.record is first.record


def test_parse_failure_on_one_page_is_contained(fakes, monkeypatch):
    real_parse = contacts_mod.parse_page

    def flaky_parse(html, page_url, **kw):
        if page_url.endswith("/contact"):
            raise ValueError("broken markup")
        return real_parse(html, page_url, **kw)

    monkeypatch.setattr(contacts_mod, "parse_page", flaky_parse)
    with respx.mock(assert_all_called=False) as router:
        router.get("https://acme.test/").mock(return_value=Response(200, text="<p>hi</p>"))
        router.get("https://acme.test/contact").mock(return_value=Response(200, text="<p>x</p>"))
        router.get("https://acme.test/about").mock(
            return_value=Response(200, text="<p>about@acme.test</p>")
        )
        _catch_all(router)
        res = _extract(
            Opportunity(id=11, url="https://acme.test/"),
            dns=fakes.Dns(),
            registration=fakes.Registration(),
        )
    assert res.pages_failed == 1
    assert "about@acme.test" in res.record.emails
