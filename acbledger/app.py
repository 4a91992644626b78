"""
ACBLedger - Local Crypto ACB Viewer
===================================

A local Streamlit page over the ACB engine. Everything runs on this machine;
transaction and price files are never uploaded anywhere else.

Running:
    streamlit run acbledger/app.py

Features:
- Import transactions and historical prices from CSV
- Adjusted Cost Base (ACB) per asset, per year, per CRA rules
- Superficial loss denial
- Income recognized on receipt
- Schedule 3 and report export
"""

import streamlit as st
from datetime import datetime
from io import BytesIO
from typing import Any, MutableMapping, Optional, Tuple

from acbledger.acb_engine import TOTALS_KEY, Report
from acbledger.config import load_settings
from acbledger.decimal_utils import quantize_money
from acbledger.errors import AcbError
from acbledger.ledger import TransactionLedger
from acbledger.logging_utils import configure_logging
from acbledger.parsers import load_prices_csv, parse_transactions_csv
from acbledger.portfolio import calculate_portfolio
from acbledger.prices import PriceStore


st.set_page_config(
    page_title="ACBLedger - Crypto ACB Calculator",
    layout="wide",
    initial_sidebar_state="expanded"
)


def init_session_state():
    """Initialize session state variables."""
    if 'settings' not in st.session_state:
        st.session_state.settings = load_settings()
        configure_logging(st.session_state.settings.log_level)
    if 'price_store' not in st.session_state:
        st.session_state.price_store = PriceStore()
    if 'transactions' not in st.session_state:
        st.session_state.transactions = []
    if 'result' not in st.session_state:
        st.session_state.result = None
    if 'selected_year' not in st.session_state:
        st.session_state.selected_year = datetime.now().year


def render_sidebar():
    """Render the sidebar with file uploaders and settings."""
    settings = st.session_state.settings
    with st.sidebar:
        st.title("ACBLedger")
        st.caption("Adjusted Cost Base for crypto assets")

        st.divider()

        st.subheader("1. Settings")
        st.session_state.reporting_currency = st.text_input(
            "Reporting currency",
            value=settings.reporting_currency or "CAD",
            help="Every cost base, proceeds and gain is expressed in this currency"
        ).strip().upper()
        st.session_state.timezone = st.text_input(
            "Tax year time zone",
            value=settings.timezone,
            help="Decides which calendar year a transaction near midnight on Dec 31 falls in"
        ).strip()

        st.divider()

        st.subheader("2. Historical Prices")
        price_file = st.file_uploader(
            "Upload Price CSV",
            type=['csv'],
            key='price_uploader',
            help="Columns: unix_timestamp, asset_symbol, fiat_symbol, price"
        )
        if is_new_upload(price_file, 'price_upload', st.session_state):
            success, message = load_prices_csv(price_file, st.session_state.price_store)
            if success:
                st.success(message)
            else:
                st.error(message)
        st.caption(f"{len(st.session_state.price_store)} prices loaded")

        st.divider()

        st.subheader("3. Transactions")
        tx_file = st.file_uploader(
            "Upload Transaction CSV",
            type=['csv'],
            key='tx_uploader',
            help="Columns: id, unix_timestamp, type, send/receive/fee asset symbol and quantity, is_income"
        )
        if is_new_upload(tx_file, 'tx_upload', st.session_state):
            load_transactions(tx_file)

        if st.session_state.transactions and st.button("Calculate ACB"):
            run_calculation()

        st.divider()

        st.subheader("4. Tax Year")
        years = list(range(2015, datetime.now().year + 2))
        st.session_state.selected_year = st.selectbox(
            "Select Tax Year",
            years,
            index=years.index(datetime.now().year)
        )

        st.divider()

        st.caption(
            "Built for Canadian taxpayers following CRA ACB rules.\n\n"
            "Not tax advice. Consult a professional."
        )


def upload_key(uploaded: Any) -> Optional[Tuple[str, int]]:
    """Identity of an uploaded file; the uploader returns the same file on every rerun."""
    if uploaded is None:
        return None
    return uploaded.name, uploaded.size


def is_new_upload(uploaded: Any, seen: str, state: MutableMapping) -> bool:
    """True the first time a given file shows up under ``seen``, recording it."""
    key = upload_key(uploaded)
    if key is None or state.get(seen) == key:
        return False
    state[seen] = key
    return True


def load_transactions(tx_file):
    """Parse an uploaded transaction file."""
    transactions, warnings = parse_transactions_csv(tx_file)

    for warning in warnings:
        if warning.startswith('ERROR'):
            st.sidebar.error(warning)
        else:
            st.sidebar.warning(warning)

    if transactions:
        st.session_state.transactions = transactions
        st.session_state.result = None
        st.sidebar.success(f"Loaded {len(transactions)} transactions")


def run_calculation():
    """Run the engine for every asset in the loaded transactions."""
    settings = st.session_state.settings
    ledger = TransactionLedger(
        reporting_currency=st.session_state.reporting_currency or None,
        transactions=st.session_state.transactions,
    )
    try:
        st.session_state.result = calculate_portfolio(
            ledger,
            st.session_state.price_store,
            max_workers=settings.max_workers,
            timezone=st.session_state.timezone or settings.timezone,
        )
    except AcbError as e:
        st.sidebar.error(str(e))
        st.session_state.result = None


def _money(value) -> str:
    return f"${float(quantize_money(value)):,.2f}"


def render_metrics(report: Report):
    """Render the metric cards of one asset."""
    summary = report.summary(st.session_state.selected_year)

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Net Capital Gain/Loss", _money(summary['net_capital_gain']))
    with col2:
        st.metric(
            "Taxable Amount (50%)",
            _money(summary['taxable_capital_gain']),
            help="Capital gains inclusion rate is 50%"
        )
    with col3:
        st.metric("Current Holdings", f"{summary['current_holdings']:f} {report.asset}")
    with col4:
        st.metric("Current ACB", f"{_money(summary['current_acb_per_unit'])}/{report.asset}")

    if summary['superficial_loss_count'] > 0:
        st.warning(
            f"**{summary['superficial_loss_count']} superficial loss(es) in "
            f"{st.session_state.selected_year}**, {_money(summary['superficial_losses'])} denied "
            "and added back to the cost base."
        )


def render_report_table(report: Report):
    """Render the per-year buckets of one asset."""
    df = report.to_frame()
    display = df.copy()
    for column in display.columns:
        if column != 'year':
            display[column] = display[column].map(lambda v: f"{v:f}")
    st.dataframe(display, use_container_width=True, hide_index=True)


def render_export_section(report: Report):
    """Render the export options of one asset."""
    year = st.session_state.selected_year
    col1, col2 = st.columns(2)

    with col1:
        st.markdown("**CRA Schedule 3 Format**")
        schedule_df = report.export_for_schedule_3(year)
        if not schedule_df.empty:
            csv_buffer = BytesIO()
            schedule_df.to_csv(csv_buffer, index=False)
            st.download_button(
                "Download Schedule 3 CSV",
                data=csv_buffer.getvalue(),
                file_name=f"acbledger_{report.asset}_schedule3_{year}.csv",
                mime="text/csv",
                key=f"schedule3_{report.asset}",
            )
        else:
            st.info("No dispositions in selected year")

    with col2:
        st.markdown("**ACB Report**")
        csv_buffer = BytesIO()
        report.to_frame().to_csv(csv_buffer, index=False)
        st.download_button(
            "Download Report CSV",
            data=csv_buffer.getvalue(),
            file_name=f"acbledger_{report.asset}_report.csv",
            mime="text/csv",
            key=f"report_{report.asset}",
        )


def render_acb_explainer():
    """Render an expandable explainer about ACB calculations."""
    with st.expander("Understanding ACB (Adjusted Cost Base)"):
        st.markdown("""
        ### What is ACB?

        The **Adjusted Cost Base** is the total cost of your holdings of one asset.
        All units form a single pool with an average cost per unit.

        **Acquisitions** add their cost plus fees to the pool. Assets received as
        income enter at fair market value; gifts and transfers in enter at zero.

        **Dispositions** remove the share of the pool being sold:
        ```
        Cost removed = Units disposed ÷ Units held × ACB
        Gain/Loss    = Proceeds − Cost removed − Outlays
        ```

        ### Superficial Loss Rule

        A loss is denied if the same asset was acquired within 30 days before or
        after the sale. The denied amount is added back to the ACB.

        ---
        *This is educational information, not tax advice. Consult a professional.*
        """)


def render_main_content():
    """Render the main content area."""
    st.title("ACBLedger")
    st.caption(f"Crypto ACB Calculator | Tax Year: {st.session_state.selected_year}")

    result = st.session_state.result
    if result is None:
        st.info("Upload prices and transactions, then press Calculate ACB")
        render_acb_explainer()
        return

    for asset, error in result.errors.items():
        st.error(f"{asset}: {error}")

    if not result.reports:
        render_acb_explainer()
        return

    tabs = st.tabs(list(result.reports))
    for tab, report in zip(tabs, result.reports.values()):
        with tab:
            render_metrics(report)
            st.divider()
            render_report_table(report)
            render_export_section(report)
            st.caption(f"{TOTALS_KEY} accumulates over the full history.")

    render_acb_explainer()


def main():
    """Main application entry point."""
    init_session_state()
    render_sidebar()
    render_main_content()


if __name__ == '__main__':
    main()
