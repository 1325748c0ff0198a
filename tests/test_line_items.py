import asyncio

from sqlalchemy.exc import SQLAlchemyError

from app.auth import OrganizationContext
from app.domain.jobs.line_items import DeleteThenAddReplacer, build_line_item_payload
from app.domain.jobs.outcomes import Step
from app.domain.jobs.repository import CatalogEntry

CONTEXT = OrganizationContext(organization_id="org-1", api_key="hcp-secret", web_base_url="https://pro.test")


class DictCatalog:
    def __init__(self, entries=None):
        self.entries = {k.lower(): v for k, v in (entries or {}).items()}

    def resolve(self, name):
        return self.entries.get(name.strip().lower())


def _replace(hcp, pacer, services, catalog=None, job_id="job_1"):
    client = hcp.client_factory(CONTEXT)
    replacer = DeleteThenAddReplacer(pacer)
    return asyncio.run(replacer.replace(client, job_id, services, catalog or DictCatalog()))


def test_replacing_x_with_a_and_b(hcp, pacer, sleep):
    hcp.line_items["job_1"] = [{"id": "li_x", "name": "X"}]

    outcomes = _replace(hcp, pacer, ["A", "B"])

    deletes = hcp.calls_to("DELETE")
    adds = hcp.calls_to("POST", "/line_items")
    assert [c[1] for c in deletes] == ["/jobs/job_1/line_items/li_x"]
    assert [c[2]["name"] for c in adds] == ["A", "B"]
    assert all(o.step == Step.LINE_ITEMS and o.ok for o in outcomes)
    # One pause between the two adds, none before the single delete
    assert sleep.delays == [0.5]


def test_same_calls_when_every_call_fails(hcp, pacer):
    hcp.line_items["job_1"] = [{"id": "li_x", "name": "X"}]
    hcp.fail("DELETE", "/jobs/job_1/line_items/li_x")
    hcp.fail("POST", "/jobs/job_1/line_items")

    outcomes = _replace(hcp, pacer, ["A", "B"])

    assert len(hcp.calls_to("DELETE")) == 1
    assert [c[2]["name"] for c in hcp.calls_to("POST", "/line_items")] == ["A", "B"]
    assert [o.detail for o in outcomes if not o.ok] == ["delete X", "add A", "add B"]
    assert not any(o.fatal for o in outcomes)


def test_deletes_are_paced(hcp, pacer, sleep):
    hcp.line_items["job_1"] = [{"id": f"li_{i}", "name": f"Old {i}"} for i in range(3)]

    _replace(hcp, pacer, [])

    assert len(hcp.calls_to("DELETE")) == 3
    assert hcp.calls_to("POST", "/line_items") == []
    assert sleep.delays == [0.3, 0.3]


def test_catalog_entry_supplies_id_and_price_in_cents(hcp, pacer):
    catalog = DictCatalog({"carpet cleaning": CatalogEntry("svc_carpet", "Carpet Cleaning", 149.5)})

    _replace(hcp, pacer, ["carpet CLEANING", "Odor Treatment"], catalog)

    bodies = [c[2] for c in hcp.calls_to("POST", "/line_items")]
    assert bodies[0] == {
        "name": "Carpet Cleaning",
        "quantity": 1,
        "service_item_id": "svc_carpet",
        "unit_price": 14950,
    }
    assert bodies[1] == {"name": "Odor Treatment", "quantity": 1}


def test_item_that_could_not_be_deleted_is_not_added_again(hcp, pacer):
    hcp.line_items["job_1"] = [{"id": "li_a", "name": "A"}]
    hcp.fail("DELETE", "/jobs/job_1/line_items/li_a")

    _replace(hcp, pacer, ["A", "B"])

    assert [c[2]["name"] for c in hcp.calls_to("POST", "/line_items")] == ["B"]


def test_list_failure_is_recorded_and_adds_continue(hcp, pacer):
    hcp.fail("GET", "/jobs/job_1/line_items")

    outcomes = _replace(hcp, pacer, ["A"])

    assert outcomes[0].detail == "list" and not outcomes[0].ok
    assert len(hcp.calls_to("POST", "/line_items")) == 1


def test_blank_service_names_are_skipped(hcp, pacer):
    _replace(hcp, pacer, ["", "  ", "A"])
    assert [c[2]["name"] for c in hcp.calls_to("POST", "/line_items")] == ["A"]


def test_payload_without_catalog_entry_uses_raw_name():
    assert build_line_item_payload("Window Wash", None) == {"name": "Window Wash", "quantity": 1}


def test_item_without_id_stays_and_is_not_added_again(hcp, pacer):
    hcp.line_items["job_1"] = [{"name": "A"}]

    _replace(hcp, pacer, ["A", "B"])

    assert hcp.calls_to("DELETE") == []
    assert [c[2]["name"] for c in hcp.calls_to("POST", "/line_items")] == ["B"]


class BrokenCatalog:
    def resolve(self, name):
        raise SQLAlchemyError("no such table: hcp_services")


def test_catalog_error_adds_by_name_and_is_recorded(hcp, pacer):
    outcomes = _replace(hcp, pacer, ["A"], BrokenCatalog())

    assert [c[2] for c in hcp.calls_to("POST", "/line_items")] == [{"name": "A", "quantity": 1}]
    failed = [o for o in outcomes if not o.ok]
    assert [o.detail for o in failed] == ["catalog A"]
    assert not failed[0].fatal
