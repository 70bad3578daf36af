"""HTTP tests for quest CRUD, membership endpoints and chat history."""

from __future__ import annotations

import asyncio

import pytest
from httpx import AsyncClient


async def _create_quest(client: AsyncClient, headers: dict[str, str], name: str = "Morning runs") -> dict:
    response = await client.post(
        "/quests",
        json={"quest_name": name, "description": "5k every morning", "checkin_frequency": "daily"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestQuestCrud:
    @pytest.mark.asyncio
    async def test_create_and_fetch(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        h = headers(ada["token"])
        quest = await _create_quest(client, h)
        assert quest["created_by"] == ada["userId"]
        assert quest["status"] == "active"

        fetched = await client.get(f"/quests/{quest['quest_id']}", headers=h)
        assert fetched.status_code == 200
        assert fetched.json()["quest_name"] == "Morning runs"

        listing = await client.get("/quests", headers=h)
        assert [q["quest_id"] for q in listing.json()] == [quest["quest_id"]]

    @pytest.mark.asyncio
    async def test_unknown_quest(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        response = await client.get("/quests/999", headers=headers(ada["token"]))
        assert response.status_code == 404
        assert response.json() == {"detail": "Quest not found"}

    @pytest.mark.asyncio
    async def test_owner_endpoint(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        quest = await _create_quest(client, headers(ada["token"]))
        response = await client.get(f"/quests/{quest['quest_id']}/owner", headers=headers(ada["token"]))
        assert response.status_code == 200
        assert response.json()["user_id"] == ada["userId"]

    @pytest.mark.asyncio
    async def test_only_owner_updates(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        quest = await _create_quest(client, headers(ada["token"]))
        url = f"/quests/{quest['quest_id']}"

        denied = await client.put(url, json={"quest_name": "Hijacked"}, headers=headers(bob["token"]))
        assert denied.status_code == 403

        updated = await client.put(url, json={"description": "10k now"}, headers=headers(ada["token"]))
        assert updated.status_code == 200
        assert updated.json()["description"] == "10k now"
        assert updated.json()["quest_name"] == "Morning runs"

    @pytest.mark.asyncio
    async def test_only_owner_deletes(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        quest = await _create_quest(client, headers(ada["token"]))
        url = f"/quests/{quest['quest_id']}"

        assert (await client.delete(url, headers=headers(bob["token"]))).status_code == 403
        deleted = await client.delete(url, headers=headers(ada["token"]))
        assert deleted.status_code == 200
        assert (await client.get(url, headers=headers(ada["token"]))).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_status_is_rejected(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        response = await client.post(
            "/quests",
            json={"quest_name": "Swim", "status": "paused"},
            headers=headers(ada["token"]),
        )
        assert response.status_code == 422


class TestMembershipEndpoints:
    @pytest.mark.asyncio
    async def test_request_approve_flow(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        quest = await _create_quest(client, headers(ada["token"]))
        qid = quest["quest_id"]

        requested = await client.post(f"/quests/{qid}/request", headers=headers(bob["token"]))
        assert requested.status_code == 201
        assert requested.json()["status"] == "pending"
        assert requested.json()["user_quest_id"]

        duplicate = await client.post(f"/quests/{qid}/request", headers=headers(bob["token"]))
        assert duplicate.status_code == 409

        not_owner = await client.post(
            f"/quests/{qid}/approve-request", json={"userId": bob["userId"]}, headers=headers(bob["token"])
        )
        assert not_owner.status_code == 403

        approved = await client.post(
            f"/quests/{qid}/approve-request", json={"userId": bob["userId"]}, headers=headers(ada["token"])
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "active"

        again = await client.post(
            f"/quests/{qid}/approve-request", json={"userId": bob["userId"]}, headers=headers(ada["token"])
        )
        assert again.status_code == 404

        members = await client.get(f"/quests/{qid}/users", headers=headers(ada["token"]))
        assert {(m["username"], m["role"], m["status"]) for m in members.json()} == {
            ("ada", "owner", "active"),
            ("bob", "participant", "active"),
        }

    @pytest.mark.asyncio
    async def test_concurrent_approvals_one_wins(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]
        await client.post(f"/quests/{qid}/request", headers=headers(bob["token"]))

        responses = await asyncio.gather(
            *(
                client.post(
                    f"/quests/{qid}/approve-request", json={"userId": bob["userId"]}, headers=headers(ada["token"])
                )
                for _ in range(2)
            )
        )
        assert sorted(r.status_code for r in responses) == [200, 404]

        members = await client.get(f"/quests/{qid}/users", headers=headers(ada["token"]))
        assert sorted(m["status"] for m in members.json()) == ["active", "active"]

    @pytest.mark.asyncio
    async def test_reject_request(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]
        await client.post(f"/quests/{qid}/request", headers=headers(bob["token"]))

        rejected = await client.request(
            "DELETE", f"/quests/{qid}/request", json={"userId": bob["userId"]}, headers=headers(ada["token"])
        )
        assert rejected.status_code == 200

        members = await client.get(f"/quests/{qid}/users", headers=headers(ada["token"]))
        assert len(members.json()) == 1

    @pytest.mark.asyncio
    async def test_invite_accept_and_complete(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]

        invited = await client.post(
            f"/quests/{qid}/invite", json={"receiverId": bob["userId"]}, headers=headers(ada["token"])
        )
        assert invited.status_code == 201
        assert invited.json()["status"] == "invited"

        accepted = await client.post(f"/quests/{qid}/approve-invite", headers=headers(bob["token"]))
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "active"

        done = await client.put(f"/quests/{qid}/membership", json={"status": "completed"}, headers=headers(bob["token"]))
        assert done.status_code == 200
        assert done.json()["status"] == "completed"

    @pytest.mark.asyncio
    async def test_decline_invite(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]
        await client.post(f"/quests/{qid}/invite", json={"receiverId": bob["userId"]}, headers=headers(ada["token"]))

        declined = await client.delete(f"/quests/{qid}/invite", headers=headers(bob["token"]))
        assert declined.status_code == 200
        accept = await client.post(f"/quests/{qid}/approve-invite", headers=headers(bob["token"]))
        assert accept.status_code == 404

    @pytest.mark.asyncio
    async def test_outsider_cannot_invite(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        cat = await signup("cat")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]
        response = await client.post(
            f"/quests/{qid}/invite", json={"receiverId": cat["userId"]}, headers=headers(bob["token"])
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_remove_and_leave(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        cat = await signup("cat")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]
        for user in (bob, cat):
            await client.post(f"/quests/{qid}/invite", json={"receiverId": user["userId"]}, headers=headers(ada["token"]))
            await client.post(f"/quests/{qid}/approve-invite", headers=headers(user["token"]))

        removed = await client.delete(f"/quests/{qid}/members/{bob['userId']}", headers=headers(ada["token"]))
        assert removed.status_code == 200

        left = await client.delete(f"/quests/{qid}/membership", headers=headers(cat["token"]))
        assert left.status_code == 200

        owner_leaves = await client.delete(f"/quests/{qid}/membership", headers=headers(ada["token"]))
        assert owner_leaves.status_code == 409

        members = await client.get(f"/quests/{qid}/users", headers=headers(ada["token"]))
        assert [m["username"] for m in members.json()] == ["ada"]


class TestMessages:
    @pytest.mark.asyncio
    async def test_post_and_list(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]

        for text in ("first", "second"):
            posted = await client.post(
                f"/quests/{qid}/messages",
                json={"message_text": text, "user_id": ada["userId"]},
                headers=headers(ada["token"]),
            )
            assert posted.status_code == 201
            assert posted.json()["username"] == "ada"

        history = await client.get(f"/quests/{qid}/messages", headers=headers(ada["token"]))
        assert [m["message_text"] for m in history.json()] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_cannot_post_as_someone_else(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        bob = await signup("bob")
        qid = (await _create_quest(client, headers(ada["token"])))["quest_id"]
        response = await client.post(
            f"/quests/{qid}/messages",
            json={"message_text": "hi", "user_id": ada["userId"]},
            headers=headers(bob["token"]),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_post_to_unknown_quest(self, client: AsyncClient, signup, headers) -> None:
        ada = await signup("ada")
        response = await client.post(
            "/quests/999/messages",
            json={"message_text": "hi", "user_id": ada["userId"]},
            headers=headers(ada["token"]),
        )
        assert response.status_code == 404
