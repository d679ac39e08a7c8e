"""Tests for catalog and collection API endpoints."""

from httpx import AsyncClient

POOL = {
    "creatures": [
        {"id": "sparkfox", "name": "Sparkfox", "rarity": "rare", "types": ["fire"]},
        {"id": "mossling", "name": "Mossling"},
    ]
}
SPARKFOX_ONLY = {"creatures": [{"id": "sparkfox", "name": "Sparkfox"}]}


class TestCatalog:
    async def test_empty_catalog(self, client: AsyncClient) -> None:
        """A school without creatures has an empty pool."""
        response = await client.get("/catalog/school-1")

        assert response.status_code == 200
        assert response.json() == {
            "school_id": "school-1",
            "creatures": [],
            "count": 0,
            "by_rarity": {},
        }

    async def test_put_then_get(self, client: AsyncClient) -> None:
        """Creatures are stored per school, ordered by name."""
        response = await client.put("/catalog/school-1", json=POOL)

        assert response.status_code == 200
        assert response.json()["count"] == 2

        data = (await client.get("/catalog/school-1")).json()
        assert [c["id"] for c in data["creatures"]] == ["mossling", "sparkfox"]
        assert data["creatures"][0]["rarity"] == "common"
        assert data["creatures"][1]["types"] == ["fire"]

    async def test_put_updates_in_place(self, client: AsyncClient) -> None:
        """Upserting an existing id changes it without duplicating."""
        await client.put("/catalog/school-1", json=POOL)

        response = await client.put(
            "/catalog/school-1",
            json={"creatures": [{"id": "mossling", "name": "Mossling", "rarity": "uncommon"}]},
        )

        data = response.json()
        assert data["count"] == 2
        assert data["creatures"][0]["rarity"] == "uncommon"

    async def test_put_empty_rejected(self, client: AsyncClient) -> None:
        """An empty update is a client error."""
        response = await client.put("/catalog/school-1", json={"creatures": []})

        assert response.status_code == 400
        assert response.json()["outcome"] == "known_failure"
        assert response.json()["failure"]["kind"] == "invalid_input"

    async def test_put_duplicate_ids_rejected(self, client: AsyncClient) -> None:
        """Ids must be unique within one request."""
        response = await client.put(
            "/catalog/school-1",
            json={"creatures": [{"id": "a", "name": "A"}, {"id": "a", "name": "B"}]},
        )

        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"
        assert response.json()["failure"]["detail"] == "duplicates=a"

    async def test_rarity_breakdown(self, client: AsyncClient) -> None:
        """The pool reports how many creatures sit in each rarity tier."""
        await client.put(
            "/catalog/school-1",
            json={
                "creatures": [
                    *POOL["creatures"],
                    {"id": "tidepup", "name": "Tidepup", "rarity": "rare"},
                ]
            },
        )

        data = (await client.get("/catalog/school-1")).json()

        assert data["count"] == 3
        assert data["by_rarity"] == {"common": 1, "rare": 2}

    async def test_other_school_id_refused(self, client: AsyncClient) -> None:
        """A school cannot take over a creature id another school owns."""
        await client.put("/catalog/school-a", json=SPARKFOX_ONLY)

        response = await client.put(
            "/catalog/school-b",
            json={
                "creatures": [
                    {"id": "mossling", "name": "Mossling"},
                    {"id": "sparkfox", "name": "Impostor"},
                ]
            },
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "catalog_conflict"

        pool_a = (await client.get("/catalog/school-a")).json()
        assert [(c["id"], c["name"]) for c in pool_a["creatures"]] == [("sparkfox", "Sparkfox")]
        assert (await client.get("/catalog/school-b")).json()["count"] == 0

    async def test_other_school_students_keep_pulling(self, client: AsyncClient) -> None:
        """A refused takeover leaves the owning school's pulls working."""
        await client.post("/wallets/stu-a", json={"school_id": "school-a"})
        await client.put("/catalog/school-a", json=SPARKFOX_ONLY)
        await client.put("/catalog/school-b", json=SPARKFOX_ONLY)

        response = await client.post("/mystery-ball/stu-a/open")

        assert response.status_code == 200


class TestCollection:
    async def test_award_and_list(self, client: AsyncClient) -> None:
        """Teacher awards show up in the collection with counts."""
        await client.post("/wallets/stu-1", json={"school_id": "school-1"})
        await client.put("/catalog/school-1", json=POOL)

        for creature_id in ("sparkfox", "sparkfox", "mossling"):
            response = await client.post(
                "/collection/stu-1/award", json={"creature_id": creature_id}
            )
            assert response.status_code == 200
            assert response.json()["source"] == "teacher_award"

        data = (await client.get("/collection/stu-1")).json()
        assert data["total_owned"] == 3
        assert data["unique_owned"] == 2
        assert data["creatures"][0] == {
            "creature_id": "sparkfox",
            "name": "Sparkfox",
            "rarity": "rare",
            "count": 2,
        }

    async def test_award_unknown_creature(self, client: AsyncClient) -> None:
        """Creatures outside the school pool cannot be awarded."""
        await client.post("/wallets/stu-1", json={"school_id": "school-1"})

        response = await client.post("/collection/stu-1/award", json={"creature_id": "ghost"})

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "invalid_collectible"

    async def test_collection_unknown_student(self, client: AsyncClient) -> None:
        """Collections belong to existing students."""
        response = await client.get("/collection/ghost")

        assert response.status_code == 404
