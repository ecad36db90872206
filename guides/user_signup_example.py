"""User signup workflow with a durable wait for email verification.

Run it with an SQLite store to see the execution survive a restart:

    DURASTEP_DATABASE_URL=sqlite://signup.db python guides/user_signup_example.py
    durastep workflow list
    durastep workflow show <execution_id> --logs
"""

import asyncio
import logging
import uuid

from durastep import (
    Failure,
    RetryPolicy,
    StepContext,
    StepDefinition,
    Success,
    WorkflowDefinition,
    WorkflowDispatcher,
    wait_for_signal,
)

logging.basicConfig(level=logging.INFO)

USERS: dict[str, dict] = {}


async def create_user(ctx: StepContext):
    email = ctx.input["email"]
    existing = next((u for u in USERS.values() if u["email"] == email), None)
    if existing:
        ctx.log("User already exists, reusing", {"userId": existing["id"]})
        return Success(output={"userId": existing["id"], "email": email})
    user_id = str(uuid.uuid4())
    USERS[user_id] = {"id": user_id, "email": email, "status": "PENDING"}
    ctx.log("Created user", {"userId": user_id})
    return Success(output={"userId": user_id, "email": email})


async def send_verification_email(ctx: StepContext):
    user_id = ctx.input["userId"]
    sent = await ctx.get_signal("verification-email-sent")
    if sent is not None and sent.payload.get("userId") == user_id:
        ctx.log("Email already sent for this execution, skipping duplicate")
        return Success(output={**ctx.input, "token": sent.payload["token"]})
    token = uuid.uuid4().hex
    ctx.log("Sending verification email", {"email": ctx.input["email"]})
    await ctx.set_signal("verification-email-sent", {"userId": user_id, "token": token})
    return Success(output={**ctx.input, "token": token})


async def risk_check(ctx: StepContext):
    email = ctx.input["email"]
    if email.endswith("@example.invalid"):
        return Failure(error="risk service rejected the domain")
    score = 0.1 if email.endswith("@example.com") else 0.6
    decision = "ALLOW" if score < 0.5 else "FLAG"
    ctx.log("Risk assessed", {"score": score, "decision": decision})
    return Success(output={**ctx.input, "riskScore": score, "riskDecision": decision})


async def finalize_user(ctx: StepContext):
    status = "ACTIVE" if ctx.input["riskDecision"] == "ALLOW" else "FLAGGED"
    USERS[ctx.input["userId"]]["status"] = status
    return Success(output={**ctx.input, "status": status})


user_signup = WorkflowDefinition(
    id="user-signup",
    name="User Signup Workflow",
    steps=(
        StepDefinition(id="create-user", name="Create User", handler=create_user),
        StepDefinition(
            id="send-verification-email",
            name="Send Verification Email",
            handler=send_verification_email,
            retry_policy=RetryPolicy(max_attempts=3, backoff_base_ms=2000),
        ),
        wait_for_signal(
            "wait-for-verification",
            "verified",
            name="Wait for User Verification",
            correlation_key="userId",
        ),
        StepDefinition(
            id="ai-risk-check",
            name="AI Risk Check",
            handler=risk_check,
            retry_policy=RetryPolicy(max_attempts=2, backoff_base_ms=1000),
        ),
        StepDefinition(id="finalize-user", name="Finalize User", handler=finalize_user),
    ),
)


async def main() -> None:
    dispatcher = WorkflowDispatcher()
    dispatcher.register_workflow(user_signup)
    await dispatcher.recover()

    started = await dispatcher.start_workflow("user-signup", {"email": "ada@example.com"})
    execution = await dispatcher.wait_for(started.execution_id)
    print(f"Execution {execution.id} is {execution.status.value}")

    user_id = execution.step("create-user").output["userId"]
    await dispatcher.signal(execution.id, "verified", {"userId": user_id})
    execution = await dispatcher.wait_for(execution.id)
    print(f"Execution {execution.id} is {execution.status.value}: {execution.output}")


if __name__ == "__main__":
    asyncio.run(main())
