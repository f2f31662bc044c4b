# ledgerhub

ledgerhub is a library for a multi-tenant double-entry ledger. It provides:

- **Accounting rules.** It calculates balances using the sign conventions for each account type. It also checks double-entry requests for balance and for a single currency.
- **Request and response types.** These are transaction and webhook requests with field validation, and responses that serialize to JSON-ready dicts.
- **HTTP handlers.** The handlers turn request bodies and query parameters into `(status_code, body)` pairs that use a uniform JSON envelope.
- **Webhooks.** It reads each tenant's webhook settings from its metadata, signs payloads with HMAC-SHA256, sends them with `httpx`, records the outcome, and includes a background worker.

## Installation

```
pip install ledgerhub
```

To install with the test tools:

```
pip install "ledgerhub[test]"
```

## Accounting rules (`ledgerhub.transaction_rules`)

`calculate_new_balance(current_balance, amount, side, account_type)` applies these sign conventions:

| Account type               | Debit     | Credit    |
|----------------------------|-----------|-----------|
| asset, expense             | increases | decreases |
| liability, equity, revenue | decreases | increases |

Any other account type is treated like an asset. `account_type` may be an `AccountType` member or its string value.

```python
from decimal import Decimal
from ledgerhub.transaction_rules import AccountType, calculate_new_balance

calculate_new_balance(Decimal("1000"), Decimal("500"), "credit", AccountType.ASSET)
# Decimal('500')
```

Two functions check the entries of a double-entry request. Each takes a list of `TransactionLineEntry`:

- `validate_double_entry_balance(entries)` raises `EmptyTransactionLinesError` when there are fewer than two entries. It raises `UnbalancedTransactionError` when total debits differ from total credits.
- `validate_currency_consistency(entries)` raises `EmptyTransactionLinesError` when there are no entries. It raises `InvalidCurrencyError` when any entry's currency differs from the first entry's.

`transaction_to_response(record)` turns a stored `TransactionRecord` into a `TransactionResponse`.

## Types and validation

`ledgerhub.transaction_types` defines:

- the requests `CreateTransactionRequest`, `TransactionLineEntry` and `CreateDoubleEntryRequest`, each with `from_dict` and `validate`;
- `ListTransactionsRequest`, with `validate`;
- the response dataclasses, each with `to_dict`;
- the `TransactionError` hierarchy.

`ledgerhub.validation` applies rule strings such as `"required,max=255"` or `"omitempty,datetime=2006-01-02"`:

- `check_field(name, value, rules)` returns the first `FieldError` for the field, or `None`.
- `validate_fields(specs)` raises a `ValidationError` that lists every failed field.

`ledgerhub.api` builds the response envelope `{"success": ..., "data": ..., "error": ...}`:

- `success_response`, `error_response` and the helpers for specific statuses (`bad_request_response`, `not_found_response`, `conflict_response` and so on) return `(status_code, body)`.
- `validation_error_response` turns a `ValidationError` into a 400 response with one message per field.
- If the data cannot be encoded, the response is a generic 500.

## Transaction handlers

`TransactionHandlers(service)` in `ledgerhub.transaction_handlers` has these methods:

- `create_transaction(tenant_slug, body)`
- `create_double_entry_transaction(tenant_slug, body)`
- `get_transaction(tenant_slug, transaction_id)`
- `get_transaction_lines(tenant_slug, transaction_id)`
- `list_transactions(tenant_slug, query)`

The `body` may be JSON text, JSON bytes or an already-decoded mapping.

The `service` is any object with these methods, which the handlers call:

- `create_simple_transaction(tenant_slug, req)`
- `create_double_entry_transaction(tenant_slug, req)`
- `get_transaction(tenant_slug, uuid)`
- `get_transaction_lines(tenant_slug, uuid)`
- `list_transactions(tenant_slug, ListTransactionsRequest)`

The handlers map errors from the service to statuses as follows:

| Error                          | Status |
|--------------------------------|--------|
| `DuplicateIdempotencyKeyError` | 409    |
| `UnbalancedTransactionError`   | 400    |
| `InvalidCurrencyError`         | 400    |
| `InvalidAccountCodeError`      | 400    |
| `TransactionNotFoundError`     | 404    |
| any other `TransactionError`   | 500    |

`list_transactions` reads the `limit`, `offset`, `account_code`, `start_date` and `end_date` query parameters. It caps `limit` at 100, and a missing or non-positive `limit` becomes 50. `get_int_param(query, key, default)` is available on its own.

## Webhooks

### Configuration

Settings live in the tenant's metadata. `ledgerhub.webhook_config.parse_webhook_config` reads these keys:

- `webhook_url`
- `webhook_secret`
- `webhook_events`
- `webhook_enabled`

If `webhook_events` is missing, all supported event types are delivered: `transaction.posted`, `balance.updated`, `account.created` and `account.updated`. If `webhook_enabled` is missing, webhooks are enabled.

### Request headers

Each delivery is a `POST` with these headers:

- `Content-Type: application/json`
- `User-Agent: LedgerService-Webhooks/1.0`
- `X-Ledger-Event-ID`
- `X-Ledger-Timestamp`
- `X-Ledger-Signature: sha256=<hex HMAC of the body>`

To check a signature on the receiving side:

```python
from ledgerhub.webhook_config import generate_signature

expected = "sha256=" + generate_signature(raw_body, "secret")
```

### WebhookService

`WebhookService(store, http_client=None)` is in `ledgerhub.webhook_service`. If you pass no client, it creates an `httpx.Client` with a 30-second timeout. It has these methods:

- `queue_webhook_delivery(event)` returns whether a delivery was queued.
- `process_pending_deliveries(batch_size)` returns how many deliveries it fetched.
- `process_delivery(delivery)`
- `deliver_webhook(config, payload)` never raises. It returns a `WebhookDeliveryResult`.
- `configure_webhook(tenant_slug, req)`
- `list_webhook_deliveries(tenant_slug, limit)`
- `get_webhook_delivery(tenant_slug, delivery_id)`
- `retry_webhook_delivery(tenant_slug, delivery_id)` refuses deliveries that were already delivered or have used all their attempts.
- `test_webhook(tenant_slug)`

Failures raise `WebhookServiceError`.

### The store

The `store` is any object with these methods:

- `get_tenant_by_id`
- `get_tenant_by_slug`
- `create_webhook_delivery`
- `get_pending_webhook_deliveries`
- `get_event_by_id`
- `update_webhook_delivery_success`
- `update_webhook_delivery_failure`
- `update_tenant_metadata`
- `get_webhook_deliveries_by_tenant`
- `get_webhook_delivery_by_id`
- `reset_webhook_delivery_for_retry`

A lookup that returns `None` or raises is reported as not found.

### WebhookHandlers

`WebhookHandlers(service)` in `ledgerhub.webhook_handlers` exposes the service in the same `(status_code, body)` form as the transaction handlers.

## Background delivery

`ledgerhub.webhook_worker.start_delivery_worker(service, stop_event)` processes pending deliveries in batches of 10. It runs one batch at once, then one every 10 seconds, until `stop_event` is set:

```python
import threading
from ledgerhub.webhook_worker import start_delivery_worker

stop = threading.Event()
threading.Thread(target=start_delivery_worker, args=(service, stop), daemon=True).start()
```

`process_all_pending_deliveries(service)` works through the whole backlog and returns the number of deliveries it handled.

## What the package does not do

- **No transaction posting.** The package does not write transactions or update stored balances. The object passed to `TransactionHandlers` must do that, for example with `calculate_new_balance` and the validation functions above.
- **No storage.** There is no database layer. You supply the store for `WebhookService` and whatever your transaction service uses.
- **No server.** There is no HTTP server, router or command-line program. Your web framework calls the handlers and sends the `(status_code, body)` they return.

## Running the tests

```
pytest
```