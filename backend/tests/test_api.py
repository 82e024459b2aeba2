"""API tests."""
from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient

from circulation.core.security import create_access_token
from circulation.schemas.common import utcnow
from circulation.store import LOANS


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "name" in data
    assert "version" in data


@pytest.mark.asyncio
async def test_requires_token(client: AsyncClient):
    response = await client.get("/api/v1/books")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_rejects_bad_token(client: AsyncClient):
    response = await client.get(
        "/api/v1/books", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token(client: AsyncClient, member):
    token = create_access_token(member.id, member.role, timedelta(minutes=-5))
    response = await client.get("/api/v1/books", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_member_cannot_add_books(client: AsyncClient, member):
    response = await client.post(
        "/api/v1/books",
        json={"isbn13": "9780131103627", "title": "K&R"},
        headers=auth(member),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_add_and_restock_book(client: AsyncClient, librarian):
    payload = {
        "isbn13": "978-0-262-03384-8",
        "title": "Introduction to Algorithms",
        "authors": ["Cormen", "Leiserson", "Rivest", "Stein"],
        "location": "QA76",
        "quantity": 2,
    }
    response = await client.post("/api/v1/books", json=payload, headers=auth(librarian))
    assert response.status_code == 201
    book = response.json()
    assert book["isbn13"] == "9780262033848"
    assert book["available_quantity"] == 2

    response = await client.post(
        "/api/v1/books", json={**payload, "quantity": 1}, headers=auth(librarian)
    )
    assert response.status_code == 201
    assert response.json()["id"] == book["id"]
    assert response.json()["quantity"] == 3

    response = await client.get("/api/v1/books", headers=auth(librarian))
    assert response.status_code == 200
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_invalid_isbn_is_422(client: AsyncClient, librarian):
    response = await client.post(
        "/api/v1/books", json={"isbn13": "123", "title": "Bad"}, headers=auth(librarian)
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_issue_and_return_flow(client: AsyncClient, librarian, member, book):
    response = await client.post(
        "/api/v1/loans",
        json={"book_id": book.id, "borrower_id": member.id},
        headers=auth(librarian),
    )
    assert response.status_code == 201
    loan = response.json()
    assert loan["status"] == "Borrowed"
    assert loan["display_status"] == "Borrowed"
    assert loan["is_overdue"] is False

    response = await client.get(f"/api/v1/books/{book.id}/availability", headers=auth(member))
    assert response.json()["available_quantity"] == 0
    assert response.json()["is_available"] is False

    response = await client.get(f"/api/v1/books/{book.id}/loans", headers=auth(librarian))
    assert [item["id"] for item in response.json()] == [loan["id"]]

    response = await client.post(f"/api/v1/loans/{loan['id']}/return", headers=auth(librarian))
    assert response.status_code == 200
    assert response.json()["status"] == "Returned"

    response = await client.post(f"/api/v1/loans/{loan['id']}/return", headers=auth(librarian))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ALREADY_RETURNED"


@pytest.mark.asyncio
async def test_out_of_stock_is_409(client: AsyncClient, librarian, member, other_member, book):
    await client.post(
        "/api/v1/loans",
        json={"book_id": book.id, "borrower_id": member.id},
        headers=auth(librarian),
    )
    response = await client.post(
        "/api/v1/loans",
        json={"book_id": book.id, "borrower_id": other_member.id},
        headers=auth(librarian),
    )
    assert response.status_code == 409
    data = response.json()
    assert data["error_code"] == "OUT_OF_STOCK"
    assert data["detail"] == "Book is out of stock"


@pytest.mark.asyncio
async def test_past_due_date_is_422(client: AsyncClient, librarian, member, book):
    response = await client.post(
        "/api/v1/loans",
        json={
            "book_id": book.id,
            "borrower_id": member.id,
            "due_date": (utcnow() - timedelta(days=1)).isoformat(),
        },
        headers=auth(librarian),
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_DUE_DATE"


@pytest.mark.asyncio
async def test_unknown_loan_is_404(client: AsyncClient, librarian):
    response = await client.post("/api/v1/loans/loan_missing/return", headers=auth(librarian))
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_store_failure_is_503(client: AsyncClient, store, librarian, member, book):
    store.fail("create", LOANS)
    response = await client.post(
        "/api/v1/loans",
        json={"book_id": book.id, "borrower_id": member.id},
        headers=auth(librarian),
    )
    assert response.status_code == 503
    assert response.json()["error_code"] == "PERSISTENCE_FAILURE"

    response = await client.get(f"/api/v1/books/{book.id}/availability", headers=auth(librarian))
    assert response.json()["available_quantity"] == 1


@pytest.mark.asyncio
async def test_members_only_see_their_own_loans(
    client: AsyncClient, loan_manager, librarian, member, other_member, book
):
    loan = await loan_manager.issue_book(book.id, member.id, utcnow() + timedelta(days=7))

    response = await client.get("/api/v1/loans", headers=auth(member))
    assert response.status_code == 200
    assert [item["id"] for item in response.json()] == [loan.id]

    response = await client.get(f"/api/v1/loans/{loan.id}", headers=auth(other_member))
    assert response.status_code == 403

    response = await client.get(
        "/api/v1/loans", params={"borrower_id": member.id}, headers=auth(other_member)
    )
    assert response.status_code == 403

    response = await client.get(
        "/api/v1/loans",
        params={"borrower_id": member.id, "open_only": True},
        headers=auth(librarian),
    )
    assert len(response.json()) == 1


@pytest.mark.asyncio
async def test_overdue_listing(client: AsyncClient, store, loan_manager, librarian, member, book):
    now = utcnow()
    loan = await loan_manager.issue_book(
        book.id, member.id, now - timedelta(days=3), now=now - timedelta(days=17)
    )

    response = await client.get("/api/v1/loans/overdue", headers=auth(librarian))
    assert response.status_code == 200
    overdue = response.json()
    assert [item["id"] for item in overdue] == [loan.id]
    assert overdue[0]["display_status"] == "Overdue"
    # Overdue is never persisted
    assert (await store.get(LOANS, loan.id)).data["status"] == "Borrowed"


@pytest.mark.asyncio
async def test_fine_assess_and_pay(client: AsyncClient, loan_manager, librarian, member, book):
    loan = await loan_manager.issue_book(book.id, member.id, utcnow() + timedelta(days=7))

    response = await client.post(
        f"/api/v1/loans/{loan.id}/fines",
        json={"reason": "Damage", "manual_amount": "12.50", "discount": "2.50"},
        headers=auth(librarian),
    )
    assert response.status_code == 201
    fine = response.json()
    assert Decimal(fine["total_amount"]) == Decimal("10.00")
    assert fine["status"] == "Unpaid"

    response = await client.get(f"/api/v1/fines/outstanding/{member.id}", headers=auth(member))
    assert response.status_code == 200
    assert Decimal(response.json()["total"]) == Decimal("10.00")
    assert response.json()["unpaid_count"] == 1

    response = await client.post(f"/api/v1/fines/{fine['id']}/pay", headers=auth(librarian))
    assert response.status_code == 200
    assert response.json()["status"] == "Paid"

    response = await client.post(f"/api/v1/fines/{fine['id']}/pay", headers=auth(librarian))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ALREADY_PAID"

    response = await client.get(
        "/api/v1/fines", params={"status": "Unpaid"}, headers=auth(member)
    )
    assert response.json() == []


@pytest.mark.asyncio
async def test_negative_fine_is_422(client: AsyncClient, loan_manager, librarian, member, book):
    loan = await loan_manager.issue_book(book.id, member.id, utcnow() + timedelta(days=7))
    response = await client.post(
        f"/api/v1/loans/{loan.id}/fines",
        json={"manual_amount": "-1"},
        headers=auth(librarian),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_user_management(client: AsyncClient, admin, librarian, book):
    response = await client.post(
        "/api/v1/admin/users",
        json={"email": "new.reader@example.org", "full_name": "New Reader"},
        headers=auth(admin),
    )
    assert response.status_code == 201
    user = response.json()
    assert user["role"] == "member"

    response = await client.post(
        "/api/v1/admin/users",
        json={"email": "NEW.reader@example.org", "full_name": "Duplicate"},
        headers=auth(admin),
    )
    assert response.status_code == 409

    response = await client.post(f"/api/v1/admin/users/{user['id']}/suspend", headers=auth(admin))
    assert response.json()["is_suspended"] is True

    response = await client.post(
        "/api/v1/loans",
        json={"book_id": book.id, "borrower_id": user["id"]},
        headers=auth(librarian),
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "BORROWER_SUSPENDED"

    response = await client.post(f"/api/v1/admin/users/{user['id']}/reinstate", headers=auth(admin))
    assert response.json()["is_suspended"] is False

    response = await client.get("/api/v1/admin/users", headers=auth(admin))
    assert response.json()["total"] == 3


@pytest.mark.asyncio
async def test_librarian_cannot_use_admin_routes(client: AsyncClient, librarian):
    response = await client.get("/api/v1/admin/users", headers=auth(librarian))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_reconcile_endpoint(client: AsyncClient, ledger, admin, book):
    await ledger.reserve_copy(book.id)

    response = await client.post("/api/v1/admin/reconcile", headers=auth(admin))
    assert response.status_code == 200
    assert response.json()[0]["book_id"] == book.id
    assert response.json()[0]["corrected"] is False

    response = await client.post(
        "/api/v1/admin/reconcile", params={"correct": True}, headers=auth(admin)
    )
    assert response.json()[0]["corrected"] is True

    response = await client.post("/api/v1/admin/reconcile", headers=auth(admin))
    assert response.json() == []


@pytest.mark.asyncio
async def test_withdraw_book(client: AsyncClient, librarian, member, book):
    response = await client.delete(f"/api/v1/books/{book.id}", headers=auth(librarian))
    assert response.status_code == 200
    assert response.json()["status"] == "unavailable"

    response = await client.post(
        "/api/v1/loans",
        json={"book_id": book.id, "borrower_id": member.id},
        headers=auth(librarian),
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "BOOK_UNAVAILABLE"
