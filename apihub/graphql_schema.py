"""GraphQL schema (SDL) and root resolvers.

Resolvers read the caller from ``info.context["user"]``; the executor only
runs behind the bearer gate, so it is always set.
"""

from __future__ import annotations

from typing import Any

from graphql import GraphQLResolveInfo, GraphQLSchema, build_schema

from .context import get_services
from .db import get_session
from .errors import ValidationFailure
from .models import User

SDL = """
type Query {
  me: User
  payments: [Payment!]!
  payment(id: ID!): Payment
}

type Mutation {
  createPayment(input: PaymentInput!): Payment!
  refundPayment(id: ID!): Payment!
}

input PaymentInput {
  amount: Int!
  currency: String!
  source: String!
  description: String
}

type User {
  id: ID!
  email: String!
  fullName: String
  createdAt: String
}

type Payment {
  id: ID!
  amount: Int!
  currency: String!
  description: String
  status: String!
  providerRef: String!
  createdAt: String
}
"""


def _user_id(info: GraphQLResolveInfo) -> int:
    return info.context["user"].id


def _parse_id(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationFailure("id must be numeric", code="INVALID_ID", meta={"id": raw}) from None


def resolve_me(info: GraphQLResolveInfo) -> dict[str, Any] | None:
    user = get_session().get(User, _user_id(info))
    return user.to_dict() if user else None


def resolve_payments(info: GraphQLResolveInfo) -> list[dict[str, Any]]:
    return [p.to_dict() for p in get_services().payments.list_for_user(_user_id(info))]


def resolve_payment(info: GraphQLResolveInfo, id: str) -> dict[str, Any]:
    return get_services().payments.get_for_user(_user_id(info), _parse_id(id)).to_dict()


def resolve_create_payment(info: GraphQLResolveInfo, input: dict[str, Any]) -> dict[str, Any]:
    return get_services().payments.charge(_user_id(info), input).to_dict()


def resolve_refund_payment(info: GraphQLResolveInfo, id: str) -> dict[str, Any]:
    return get_services().payments.refund(_user_id(info), _parse_id(id)).to_dict()


# Root value: graphql-core's default resolver calls these with (info, **args)
ROOT_VALUE: dict[str, Any] = {
    "me": resolve_me,
    "payments": resolve_payments,
    "payment": resolve_payment,
    "createPayment": resolve_create_payment,
    "refundPayment": resolve_refund_payment,
}


def build_graphql_schema() -> GraphQLSchema:
    return build_schema(SDL)


graphql_schema = build_graphql_schema()

__all__ = ["ROOT_VALUE", "SDL", "build_graphql_schema", "graphql_schema"]
