import re

import database
import orders


def test_place_order_computes_total_and_decrements_stock(client, make_book, order_payload, stock_of, mongo):
    book_id = make_book(price=500, stock=5)

    res = client.post("/orders", json=order_payload((book_id, 2)))

    assert res.status_code == 201
    order = res.json()["order"]
    assert order["totalAmount"] == 1000
    assert order["orderStatus"] == "pending"
    assert order["paymentStatus"] == "pending"
    assert order["books"] == [{"bookId": book_id, "title": "মৃত্যু ও তার পরে", "quantity": 2, "price": 500}]
    assert order["customer"]["postalCode"] == "1205"
    assert stock_of(book_id) == 3
    assert mongo[database.ORDERS].count_documents({}) == 1


def test_insufficient_stock_leaves_stock_and_creates_no_order(client, make_book, order_payload, stock_of, mongo):
    book_id = make_book(price=500, stock=1)

    res = client.post("/orders", json=order_payload((book_id, 2)))

    assert res.status_code == 400
    assert res.json()["message"] == "Insufficient stock for মৃত্যু ও তার পরে"
    assert stock_of(book_id) == 1
    assert mongo[database.ORDERS].count_documents({}) == 0


def test_failed_later_line_returns_earlier_reservations(client, make_book, order_payload, stock_of, mongo):
    first = make_book(title="First", stock=4)
    second = make_book(title="Second", stock=1)

    res = client.post("/orders", json=order_payload((first, 3), (second, 2)))

    assert res.status_code == 400
    assert stock_of(first) == 4
    assert stock_of(second) == 1
    assert mongo[database.ORDERS].count_documents({}) == 0


def test_missing_book_is_404_and_restores_stock(client, make_book, order_payload, stock_of):
    book_id = make_book(stock=3)

    res = client.post("/orders", json=order_payload((book_id, 1), ("64b7f0c2a1b2c3d4e5f60718", 1)))

    assert res.status_code == 404
    assert res.json()["message"] == "Book 64b7f0c2a1b2c3d4e5f60718 not found"
    assert stock_of(book_id) == 3


def test_malformed_book_id_is_404(client, order_payload):
    res = client.post("/orders", json=order_payload(("not-an-id", 1)))
    assert res.status_code == 404


def test_discount_price_is_used_when_present(client, make_book, order_payload):
    book_id = make_book(price=500, discount_price=350)

    res = client.post("/orders", json=order_payload((book_id, 3)))

    assert res.status_code == 201
    assert res.json()["order"]["totalAmount"] == 1050
    assert res.json()["order"]["books"][0]["price"] == 350


def test_client_supplied_prices_are_ignored(client, make_book, order_payload):
    book_id = make_book(price=500)
    payload = order_payload((book_id, 1), totalAmount=1)
    payload["books"][0]["price"] = 1

    res = client.post("/orders", json=payload)

    assert res.json()["order"]["totalAmount"] == 500


def test_total_is_unaffected_by_later_price_changes(client, make_book, order_payload, super_headers):
    book_id = make_book(price=500)
    order = client.post("/orders", json=order_payload((book_id, 2))).json()["order"]

    res = client.put(f"/books/{book_id}", json={"price": 900}, headers=super_headers)
    assert res.status_code == 200

    tracked = client.get(f"/orders/track/{order['orderId']}").json()
    assert tracked["totalAmount"] == 1000
    assert tracked["books"][0]["price"] == 500


def test_order_ids_are_unique_and_readable(client, make_book, order_payload):
    book_id = make_book(stock=50)

    ids = [client.post("/orders", json=order_payload((book_id, 1))).json()["order"]["orderId"] for _ in range(20)]

    assert len(set(ids)) == 20
    assert all(re.fullmatch(r"ORD-\d{6}-[A-Z0-9]{6}", i) for i in ids)


def test_order_id_collision_is_retried(client, make_book, order_payload, monkeypatch):
    book_id = make_book(stock=5)
    generated = iter(["ORD-261019-AAAAAA", "ORD-261019-AAAAAA", "ORD-261019-BBBBBB"])
    monkeypatch.setattr(orders, "generate_order_id", lambda now=None: next(generated))

    first = client.post("/orders", json=order_payload((book_id, 1))).json()["order"]
    second = client.post("/orders", json=order_payload((book_id, 1))).json()["order"]

    assert first["orderId"] == "ORD-261019-AAAAAA"
    assert second["orderId"] == "ORD-261019-BBBBBB"


def test_unavailable_book_cannot_be_ordered(client, make_book, order_payload, stock_of):
    book_id = make_book(is_available=False)

    res = client.post("/orders", json=order_payload((book_id, 1)))

    assert res.status_code == 400
    assert stock_of(book_id) == 5


def test_empty_order_is_rejected(client, order_payload):
    res = client.post("/orders", json=order_payload())
    assert res.status_code == 400
    assert "message" in res.json()


def test_orders_cannot_oversell_across_requests(client, make_book, order_payload, stock_of):
    book_id = make_book(stock=3)

    assert client.post("/orders", json=order_payload((book_id, 2))).status_code == 201
    assert client.post("/orders", json=order_payload((book_id, 2))).status_code == 400
    assert stock_of(book_id) == 1


def test_reservation_is_conditional_on_remaining_stock(make_book, stock_of):
    # Two placements that both saw stock=1 before reserving: only one wins
    book_id = make_book(stock=1)
    oid = database.to_object_id(book_id)

    assert orders._reserve_stock(oid, 1) is not None
    assert orders._reserve_stock(oid, 1) is None
    assert stock_of(book_id) == 0


def test_track_order(client, make_book, order_payload):
    book_id = make_book()
    order_id = client.post("/orders", json=order_payload((book_id, 1))).json()["order"]["orderId"]

    res = client.get(f"/orders/track/{order_id}")

    assert res.status_code == 200
    assert res.json()["orderId"] == order_id

    assert client.get("/orders/track/ORD-000000-NOPE00").status_code == 404


def test_listing_orders_requires_admin(client):
    res = client.get("/orders")
    assert res.status_code == 401
    assert res.json()["message"] == "No token provided"


def test_list_orders_filters_by_status(client, make_book, order_payload, admin_headers):
    book_id = make_book(stock=10)
    placed = [client.post("/orders", json=order_payload((book_id, 1))).json()["order"] for _ in range(3)]
    client.patch(f"/orders/{placed[0]['id']}/status", json={"orderStatus": "processing"}, headers=admin_headers)

    everything = client.get("/orders", headers=admin_headers).json()
    processing = client.get("/orders", params={"status": "processing"}, headers=admin_headers).json()

    assert len(everything) == 3
    assert [o["orderId"] for o in processing] == [placed[0]["orderId"]]


def test_get_order_by_id(client, make_book, order_payload, admin_headers):
    book_id = make_book()
    placed = client.post("/orders", json=order_payload((book_id, 1))).json()["order"]

    res = client.get(f"/orders/{placed['id']}", headers=admin_headers)

    assert res.status_code == 200
    assert res.json()["orderId"] == placed["orderId"]
    assert client.get("/orders/64b7f0c2a1b2c3d4e5f60718", headers=admin_headers).status_code == 404
