"""
Streamlit Frontend for Group Ledger

Two pages:
1. Split Calculator - try equal, percentage and custom splits with every
   rounding strategy and see exactly who absorbs the rounding remainder
2. Group Balances - a demo group backed by in-memory storage, where
   expenses and settlements can be added and balances are recomputed

DESIGN PRINCIPLES:
1. Show the numbers before saving
2. Clear error messages in simple language
3. Nothing is saved without an explicit "Save" action
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from splitledger.audit import create_correlation_id
from splitledger.config import get_settings, validate_all_settings
from splitledger.ledger import (
    ExpenseRejectedError,
    GroupLedgerService,
    LedgerError,
    SettlementRejectedError,
    create_app_components,
)
from splitledger.models import (
    GroupMember,
    MemberRole,
    RoundingStrategy,
    SettlementDraft,
    SplitType,
)
from splitledger.splits import (
    calculate_splits,
    format_currency_with_precision,
    get_split_summary,
)


# Page configuration
st.set_page_config(
    page_title="Group Ledger",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


DEMO_USERS = {
    "user1": "Alice",
    "user2": "Bob",
    "user3": "Charlie",
    "user4": "Diana",
    "user5": "Eve",
    "user6": "Frank",
    "user7": "Grace",
}

# (label, total, participants, split type, custom amounts, custom percentages)
DEMO_SCENARIOS = [
    ("₹10 between 3 people", "10.00", ["user1", "user2", "user3"], SplitType.EQUAL, None, None),
    (
        "₹100 at 33.33% each",
        "100.00",
        ["user1", "user2", "user3"],
        SplitType.PERCENTAGE,
        None,
        {"user1": "33.33", "user2": "33.33", "user3": "33.33"},
    ),
    (
        "₹50 custom (20 + 30.01)",
        "50.00",
        ["user1", "user2"],
        SplitType.CUSTOM,
        {"user1": "20.00", "user2": "30.01"},
        None,
    ),
    ("₹0.03 between 2 people", "0.03", ["user1", "user2"], SplitType.EQUAL, None, None),
    ("₹100 between 7 people", "100.00", list(DEMO_USERS), SplitType.EQUAL, None, None),
]


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def money(amount) -> str:
    return format_currency_with_precision(
        amount, 2, get_settings().app.display_currency
    )


async def _seed_demo_group(service: GroupLedgerService) -> str:
    alice = GroupMember(user_id="user1", name="Alice", role=MemberRole.ADMIN)
    group = await service.create_group("Goa Trip", alice)
    for user_id in ("user2", "user3"):
        await service.add_member(
            group.id, "user1", GroupMember(user_id=user_id, name=DEMO_USERS[user_id])
        )

    await service.add_split_expense(
        "user1", group.id, "3000", "user1", ["user1", "user2", "user3"],
        description="Villa booking",
    )
    await service.add_split_expense(
        "user2", group.id, "100", "user2", ["user1", "user2", "user3"],
        description="Snacks",
    )
    await service.add_split_expense(
        "user3", group.id, "1200", "user3", ["user1", "user2", "user3"],
        split_type=SplitType.PERCENTAGE,
        custom_percentages={"user1": "50", "user2": "25", "user3": "25"},
        description="Scuba diving",
    )
    return group.id


@st.cache_resource
def get_components():
    """Get or create application components with a seeded demo group (cached)."""
    service, storage = create_app_components()
    group_id = run_async(_seed_demo_group(service))
    return service, group_id


def main():
    """Main application entry point."""
    service, group_id = get_components()

    st.sidebar.title("💸 Group Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🧮 Split Calculator", "👥 Group Balances", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How it works:**
        1. Pick who shared the expense
        2. Choose how to split it
        3. Check the split adds up, then save
        """
    )

    if page == "🧮 Split Calculator":
        render_calculator_page()
    elif page == "👥 Group Balances":
        render_group_page(service, group_id)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_split_table(splits, total: Decimal, precision: int):
    summary = get_split_summary(splits, total)

    rows = [
        {
            "Member": DEMO_USERS.get(split.user_id, split.user_id),
            "Amount": format_currency_with_precision(split.amount, precision),
            "Percentage": f"{split.percentage}%",
            "Adjusted": "✏️" if split.is_adjusted else "",
        }
        for split in splits
    ]
    st.table(rows)

    col1, col2, col3 = st.columns(3)
    col1.metric("Total", format_currency_with_precision(summary.total_amount, precision))
    col2.metric("Sum of splits", format_currency_with_precision(summary.total_split, precision))
    col3.metric("Adjusted shares", summary.adjusted_count)

    if summary.is_balanced:
        st.success("✅ Splits add up to the total")
    else:
        st.error(f"❌ Splits are off by {summary.difference}")


def render_calculator_page():
    """Render the split calculator playground."""
    st.title("🧮 Split Calculator")
    st.markdown("See how an amount is divided and who absorbs the rounding remainder.")

    col1, col2 = st.columns(2)
    with col1:
        strategy = st.selectbox(
            "Rounding strategy",
            options=list(RoundingStrategy),
            format_func=lambda x: x.value.title(),
            help="Who gets the leftover paise when the amount doesn't divide evenly",
        )
    with col2:
        precision = st.number_input("Decimal places", min_value=0, max_value=4, value=2)

    st.markdown("### Example scenarios")
    for label, total, participants, split_type, amounts, percentages in DEMO_SCENARIOS:
        with st.expander(label):
            splits = calculate_splits(
                total,
                participants,
                split_type,
                custom_amounts=amounts,
                custom_percentages=percentages,
                precision=int(precision),
                rounding_strategy=strategy,
            )
            render_split_table(splits, Decimal(total), int(precision))

    st.markdown("---")
    st.markdown("### Try your own")

    total = st.number_input("Amount", min_value=0.0, value=100.0, step=0.01, format="%.2f")
    participants = st.multiselect(
        "Participants",
        options=list(DEMO_USERS),
        default=["user1", "user2", "user3"],
        format_func=lambda u: DEMO_USERS[u],
    )
    split_type = st.selectbox(
        "Split type",
        options=list(SplitType),
        format_func=lambda x: x.value.title(),
    )

    custom_amounts = {}
    custom_percentages = {}
    if split_type != SplitType.EQUAL:
        for user_id in participants:
            value = st.number_input(
                f"{DEMO_USERS[user_id]} "
                f"({'%' if split_type == SplitType.PERCENTAGE else 'amount'})",
                min_value=0.0,
                step=0.01,
                key=f"custom_{user_id}",
            )
            if split_type == SplitType.PERCENTAGE:
                custom_percentages[user_id] = Decimal(str(value))
            else:
                custom_amounts[user_id] = Decimal(str(value))

    if st.button("🧮 Calculate", type="primary"):
        splits = calculate_splits(
            Decimal(str(total)),
            participants,
            split_type,
            custom_amounts=custom_amounts,
            custom_percentages=custom_percentages,
            precision=int(precision),
            rounding_strategy=strategy,
        )
        if not splits:
            st.warning("Nothing to split. Enter an amount and pick at least one participant.")
        else:
            render_split_table(splits, Decimal(str(total)), int(precision))


def render_group_page(service: GroupLedgerService, group_id: str):
    """Render the demo group's balances and entry forms."""
    group = run_async(service.get_group(group_id))
    st.title(f"👥 {group.name}")

    names = {m.user_id: m.name or m.user_id for m in group.all_members()}
    acting_user = st.selectbox(
        "You are",
        options=group.member_ids,
        format_func=lambda u: names[u],
    )

    balances = run_async(service.get_group_balances(group_id))

    st.markdown("### Balances")
    rows = []
    for user_id, balance in balances.items():
        rows.append({
            "Member": names.get(user_id, user_id),
            "Paid": money(balance.total_paid),
            "Share": money(balance.total_share),
            "Net": money(balance.net_balance),
        })
    st.table(rows)

    for user_id, balance in balances.items():
        for creditor, amount in balance.outstanding_debts().items():
            st.markdown(f"- **{names.get(user_id, user_id)}** owes "
                        f"**{names.get(creditor, creditor)}** {money(amount)}")

    st.markdown("---")
    col1, col2 = st.columns(2)

    with col1:
        st.markdown("### ➕ Add expense")
        with st.form("add_expense"):
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=0.01, format="%.2f")
            paid_by = st.selectbox(
                "Paid by", options=group.member_ids, format_func=lambda u: names[u]
            )
            participants = st.multiselect(
                "Split between",
                options=group.member_ids,
                default=group.member_ids,
                format_func=lambda u: names[u],
            )
            expense_date = st.date_input("Date", value=date.today())
            submitted = st.form_submit_button("💾 Save expense", type="primary")

        if submitted:
            try:
                run_async(service.add_split_expense(
                    acting_user,
                    group_id,
                    Decimal(str(amount)),
                    paid_by,
                    participants,
                    description=description,
                    date=expense_date,
                    correlation_id=create_correlation_id(),
                ))
                st.rerun()
            except ExpenseRejectedError as e:
                st.markdown(f'<div class="warning-box"><pre>{e}</pre></div>',
                            unsafe_allow_html=True)
            except LedgerError as e:
                st.error(str(e))

    with col2:
        st.markdown("### 🤝 Record settlement")
        with st.form("add_settlement"):
            from_user = st.selectbox(
                "From", options=group.member_ids, format_func=lambda u: names[u]
            )
            to_user = st.selectbox(
                "To", options=group.member_ids, index=min(1, len(group.member_ids) - 1),
                format_func=lambda u: names[u],
            )
            amount = st.number_input(
                "Amount", min_value=0.0, step=0.01, format="%.2f", key="settle_amount"
            )
            notes = st.text_input("Notes (optional)")
            submitted = st.form_submit_button("💾 Save settlement", type="primary")

        if submitted:
            try:
                run_async(service.add_settlement(
                    acting_user,
                    SettlementDraft(
                        group_id=group_id,
                        from_user=from_user,
                        to_user=to_user,
                        amount=Decimal(str(amount)),
                        notes=notes or None,
                    ),
                    correlation_id=create_correlation_id(),
                ))
                st.rerun()
            except SettlementRejectedError as e:
                st.markdown(f'<div class="warning-box"><pre>{e}</pre></div>',
                            unsafe_allow_html=True)
            except LedgerError as e:
                st.error(str(e))


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")
    status = validate_all_settings()

    for name, key in [("Ledger", "ledger"), ("Application", "app")]:
        if status.get(key, False):
            st.success(f"✅ {name} settings loaded")
        else:
            st.error(f"❌ {name} settings - {status.get(f'{key}_error', 'Invalid')}")

    if status.get("ledger"):
        ledger = get_settings().ledger
        st.json({
            "default_precision": ledger.default_precision,
            "default_rounding_strategy": ledger.default_rounding_strategy,
            "split_tolerance": str(ledger.split_tolerance),
            "strict_member_references": ledger.strict_member_references,
            "balance_cache_ttl_seconds": ledger.balance_cache_ttl_seconds,
        })

    st.markdown("---")
    st.markdown(
        "Settings are read from environment variables prefixed with `LEDGER_` "
        "or from a `.env` file."
    )


if __name__ == "__main__":
    main()
