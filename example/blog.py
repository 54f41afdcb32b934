"""Schema functions and hooks for the blog example."""

import re

from routeforge import AbortError, HookContext, ValidationError, hook, schema_function

SPAM = re.compile(r"\b(viagra|casino)\b", re.IGNORECASE)


@schema_function("ensureLongComment")
def ensure_long_comment(comment):
    if len(comment.get("message") or "") <= 5:
        raise ValidationError(
            "Comments must be longer than 5 characters.", name="ValidateLength"
        )


@schema_function("isArticleOrReview")
def is_article_or_review(value):
    return bool(re.search(r"article|review", value, re.IGNORECASE))


@schema_function("params")
def params(record, params, body):
    """Echo the body back as a custom post when `foo` is given."""
    if not params.get("foo"):
        raise AbortError({"name": "NoFoo", "message": "Foo not found."})
    body["title"] = "Custom"
    body["foo"] = params["foo"]
    return body


@hook("blockSpam")
def block_spam(ctx: HookContext):
    if SPAM.search(ctx.record.get("title") or ""):
        ctx.abort({"name": "Blocked", "message": "Spam is not allowed."})
