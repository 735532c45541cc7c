"""
Zone identification stage tests
"""

import pytest

from src.domain.entities.market import StrategicZone
from src.domain.exceptions import CircuitOpenError, LLMAPIError
from src.pipeline.zone_identification import ZoneIdentificationService


def _zone(zone_id, lat, lng, priority, revenue=0.0):
    return StrategicZone(
        id=zone_id, name=zone_id, center_lat=lat, center_lng=lng,
        radius=2000, priority=priority, estimated_revenue=revenue,
    )


class TestPrioritize:
    """Filtering, ordering and spacing"""

    def test_min_priority_and_order(self, reasoning_client):
        service = ZoneIdentificationService(reasoning_client)
        zones = [
            _zone("low", 52.0, 13.0, 3),
            _zone("mid", 53.0, 13.0, 6),
            _zone("top", 54.0, 13.0, 9),
        ]
        assert [z.id for z in service.prioritize(zones)] == ["top", "mid"]

    def test_revenue_breaks_priority_ties(self, reasoning_client):
        service = ZoneIdentificationService(reasoning_client)
        zones = [_zone("a", 52.0, 13.0, 7, revenue=100), _zone("b", 53.0, 13.0, 7, revenue=900)]
        assert [z.id for z in service.prioritize(zones)] == ["b", "a"]

    def test_zones_closer_than_5km_are_dropped(self, reasoning_client):
        service = ZoneIdentificationService(reasoning_client)
        zones = [
            _zone("first", 52.5200, 13.4050, 9),
            # ~1.1 km north of "first"
            _zone("near", 52.5300, 13.4050, 8),
            _zone("far", 52.6200, 13.4050, 7),
        ]
        assert [z.id for z in service.prioritize(zones)] == ["first", "far"]

    def test_max_zones(self, reasoning_client):
        service = ZoneIdentificationService(reasoning_client, max_zones=2)
        zones = [_zone(f"z{i}", 40.0 + i, 10.0, 9 - i * 0.1) for i in range(5)]
        assert len(service.prioritize(zones)) == 2


class TestRescale:
    def test_analysis_priority_is_rescaled(self):
        assert ZoneIdentificationService.rescale(_zone("z", 0, 0, 0.73)).priority == 7.3

    def test_zone_scale_priority_untouched(self):
        assert ZoneIdentificationService.rescale(_zone("z", 0, 0, 6.5)).priority == 6.5


class TestIdentifyZones:
    @pytest.mark.asyncio
    async def test_enhanced_zones(self, reasoning_client, make_response, market_analysis):
        reasoning_client.request_json.return_value = make_response(
            {
                "zones": [
                    {
                        "name": "Mitte",
                        "priority": 8.5,
                        "center_lat": 52.52,
                        "center_lng": 13.40,
                        "radius_km": 3,
                        "expected_stores": 4,
                        "revenue_projection": 2_000_000,
                        "reasoning": "Dense foot traffic",
                        "key_factors": ["tourism"],
                    },
                    {"name": "Outskirts", "priority": 2, "center_lat": 52.3, "center_lng": 13.0},
                ]
            },
            total_tokens=900,
            cost=0.003,
        )
        service = ZoneIdentificationService(reasoning_client)

        result = await service.identify_zones(market_analysis, [_zone("opportunity-0", 52.52, 13.40, 0.8)])

        assert result.enhanced is True
        assert result.tokens_used == 900
        assert result.cost == 0.003
        assert [z.name for z in result.zones] == ["Mitte"]
        mitte = result.zones[0]
        assert mitte.id == "enhanced-zone-0"
        assert mitte.radius == 3000
        assert mitte.estimated_capacity == 4
        assert mitte.characteristics == ["Dense foot traffic", "tourism"]
        assert mitte.confidence == market_analysis.confidence

    @pytest.mark.asyncio
    async def test_falls_back_to_analysis_zones(self, reasoning_client, market_analysis):
        reasoning_client.request_json.side_effect = LLMAPIError("boom")
        service = ZoneIdentificationService(reasoning_client)

        result = await service.identify_zones(
            market_analysis,
            [_zone("opportunity-0", 52.52, 13.40, 0.8), _zone("gap-0", 48.0, 11.0, 0.4)],
        )

        assert result.enhanced is False
        assert result.tokens_used == 0
        # 0.8 -> 8.0 survives, 0.4 -> 4.0 is below the minimum
        assert [(z.id, z.priority) for z in result.zones] == [("opportunity-0", 8.0)]

    @pytest.mark.asyncio
    async def test_open_circuit_falls_back(self, reasoning_client, market_analysis):
        reasoning_client.request_json.side_effect = CircuitOpenError("reasoning", retry_after=30)
        result = await ZoneIdentificationService(reasoning_client).identify_zones(
            market_analysis, [_zone("opportunity-0", 52.52, 13.40, 0.9)]
        )
        assert result.enhanced is False
        assert len(result.zones) == 1

    @pytest.mark.asyncio
    async def test_empty_enhancement_falls_back(self, reasoning_client, make_response, market_analysis):
        reasoning_client.request_json.return_value = make_response({"zones": []})
        result = await ZoneIdentificationService(reasoning_client).identify_zones(
            market_analysis, [_zone("opportunity-0", 52.52, 13.40, 0.9)]
        )
        assert result.enhanced is False
        assert result.zones[0].priority == 9.0

    def test_prompt_lists_zones(self, reasoning_client, market_analysis):
        prompt = ZoneIdentificationService(reasoning_client).build_prompt(
            market_analysis, [_zone("opportunity-0", 52.52, 13.40, 8.0)]
        )
        assert "Region: Berlin" in prompt
        assert "Market Saturation: medium (0.45)" in prompt
        assert "radius 2.0km" in prompt
