from campdash.aggregate import aggregate, view_payload
from campdash.config import OutcomeLabels
from campdash.filters import FilterState, apply_filters, filter_options, normalize_filters
from campdash.ingest import ingest
from campdash.metrics_ranking import conversion_rate


def test_scenario_regions_and_ranking(scenario_table):
    view = aggregate(ingest(scenario_table))

    assert [(g.name, g.count) for g in view.regions] == [("Seoul", 2), ("Busan", 1)]
    ranking = [(o.name, o.success_count, o.rank, o.incentive) for o in view.owner_ranking]
    assert ranking == [("Kim", 2, 1, True), ("Lee", 0, 2, True)]
    assert view.owner_ranking[0].conversion_rate == "100.0"
    assert view.owner_ranking[1].conversion_rate == "0.0"


def test_kpis_and_group_counts(sample_records):
    view = aggregate(sample_records)

    assert view.kpis == {"total_sites": 6, "contacts": 5, "success": 2, "negative": 3}
    assert [(g.name, g.count, g.percentage) for g in view.regions] == [
        ("Seoul", 3, 50.0),
        ("Busan", 2, 33.3),
        ("unspecified", 1, 16.7),
    ]
    assert sum(g.count for g in view.results) == len(sample_records)


def test_ties_keep_first_seen_order(make_record):
    records = [
        make_record(1, "A", "Busan"),
        make_record(2, "B", "Seoul"),
        make_record(3, "C", "Seoul"),
        make_record(4, "D", "Busan"),
        make_record(5, "E", "Jeju"),
    ]
    view = aggregate(records)
    assert [g.name for g in view.regions] == ["Busan", "Seoul", "Jeju"]


def test_districts_group_under_their_region(make_record):
    records = [
        make_record(1, "A", "Gangwon", district="Pyeongchang"),
        make_record(2, "B", "Gangwon", district="Hongcheon"),
        make_record(3, "C", "Gangwon", district="Pyeongchang"),
        make_record(4, "D", "Busan", district="Gijang"),
    ]
    view = aggregate(records)

    assert [(d.region, d.name, d.count) for d in view.districts] == [
        ("Gangwon", "Pyeongchang", 2),
        ("Gangwon", "Hongcheon", 1),
        ("Busan", "Gijang", 1),
    ]
    nested = view.districts_by_region()
    assert list(nested) == ["Gangwon", "Busan"]
    assert [d.name for d in nested["Gangwon"]] == ["Pyeongchang", "Hongcheon"]


def test_owner_ranking_ties_and_incentive(sample_records):
    view = aggregate(sample_records)

    assert [(o.name, o.total_contacts, o.success_count, o.rank) for o in view.owner_ranking] == [
        ("Kim", 3, 1, 1),
        ("Park", 1, 1, 2),
        ("Lee", 1, 0, 3),
    ]
    assert view.owner_ranking[0].conversion_rate == "33.3"
    assert [o.name for o in view.incentive_recipients] == ["Kim", "Park"]


def test_exactly_two_incentives_even_when_all_tie(make_record):
    records = [make_record(i, f"Camp{i}", owner=name, result="Entered(New)") for i, name in enumerate("ABC", start=1)]
    ranking = aggregate(records).owner_ranking
    assert [o.rank for o in ranking] == [1, 2, 3]
    assert [o.incentive for o in ranking] == [True, True, False]


def test_conversion_rate_formatting():
    assert conversion_rate(0, 0) == "0.0"
    assert conversion_rate(1, 3) == "33.3"
    assert conversion_rate(2, 3) == "66.7"
    assert conversion_rate(5, 5) == "100.0"


def test_top_reasons_only_count_negative_outcomes(sample_records, make_record):
    records = sample_records + [make_record(7, "Quiet Camp", result="Entered(New)", reason="Fees too high")]
    view = aggregate(records)

    assert [(g.name, g.count, g.percentage) for g in view.top_reasons] == [
        ("Fees too high", 2, 66.7),
        ("Already listed elsewhere", 1, 33.3),
    ]


def test_top_reasons_capped_at_ten(make_record):
    records = []
    for i in range(12):
        for j in range(12 - i):
            records.append(make_record(len(records) + 1, f"Camp{len(records)}", result="Rejected", reason=f"reason-{i}"))
    records.append(make_record(len(records) + 1, "Blank", result="Rejected", reason=""))

    top = aggregate(records).top_reasons
    assert len(top) == 10
    counts = [g.count for g in top]
    assert counts == sorted(counts, reverse=True)
    assert top[0].name == "reason-0"


def test_custom_outcome_labels(make_record):
    records = [
        make_record(1, "A", owner="Kim", result="Won"),
        make_record(2, "B", owner="Kim", result="Lost", reason="price"),
    ]
    view = aggregate(records, outcomes=OutcomeLabels(success=("Won",), negative=("Lost",)))
    assert view.kpis["success"] == 1
    assert view.kpis["negative"] == 1
    assert view.owner_ranking[0].success_count == 1
    assert [g.name for g in view.top_reasons] == ["price"]


def test_filters_are_conjunctive(sample_records):
    filters = FilterState(region="Seoul", result="Rejected")
    view = aggregate(sample_records, filters)

    assert view.kpis["total_sites"] == 2
    expected = {r.id for r in sample_records if r.region_wide == "Seoul"} & {
        r.id for r in sample_records if r.result == "Rejected"
    }
    assert {r.id for r in apply_filters(sample_records, filters)} == expected


def test_options_come_from_unfiltered_records(sample_records):
    view = aggregate(sample_records, {"region": "Busan"})
    assert view.options == filter_options(sample_records)
    assert view.options["regions"] == ["Busan", "Seoul"]
    assert view.options["owners"] == ["Kim", "Lee", "Park"]


def test_query_matches_site_name_and_notes_case_insensitively(sample_records):
    assert [r.id for r in apply_filters(sample_records, FilterState(query="LAKE"))] == [3]
    assert [r.id for r in apply_filters(sample_records, FilterState(query="try later"))] == [5]


def test_normalize_filters_accepts_md_alias():
    filters = normalize_filters({"md": "Kim", "query": "  pine  ", "region": None})
    assert filters == FilterState(owner="Kim", query="pine")
    assert normalize_filters(None).is_empty()


def test_aggregate_is_idempotent(sample_records):
    filters = FilterState(owner="Kim")
    assert aggregate(sample_records, filters) == aggregate(sample_records, filters)


def test_aggregate_empty_input():
    view = aggregate([])
    assert view.kpis == {"total_sites": 0, "contacts": 0, "success": 0, "negative": 0}
    assert view.regions == []
    assert view.owner_ranking == []
    assert view.top_reasons == []
    assert view.insights.template_id == "no_notes"


def test_filter_with_no_matches_yields_empty_view(sample_records):
    view = aggregate(sample_records, FilterState(region="Mars"))
    assert view.kpis["total_sites"] == 0
    assert view.districts == []
    assert view.options["regions"] == ["Busan", "Seoul"]


def test_view_payload_includes_charts(sample_records):
    filters = FilterState()
    payload = view_payload(aggregate(sample_records, filters), filters)

    assert set(payload["charts"]) == {"region_counts", "owner_share", "result_share"}
    assert payload["charts"]["region_counts"]["mark"]["type"] == "bar"
    assert [o["name"] for o in payload["incentive_recipients"]] == ["Kim", "Park"]
    assert "Seoul" in payload["districts_by_region"]
    assert payload["filters"]["region"] == ""


def test_view_payload_without_charts(sample_records):
    filters = FilterState()
    payload = view_payload(aggregate(sample_records, filters), filters, with_charts=False)
    assert payload["charts"] == {}
