"""
Streamlit Frontend for Couple Organizer

The screens a couple uses day to day: reminders, planning (expenses),
travel, restaurants, the AI helpers and the admin panel.

DESIGN PRINCIPLES:
1. Every change shows up immediately, and is undone visibly if it fails
2. Only permitted views appear in the sidebar
3. A view that is not permitted never renders, even if requested directly
4. Clear, actionable messages when the database is not set up yet

Gateway, change feed and AI services are cached once per process. Each
browser client gets its own session, keyed by the `sid` query parameter,
so two people on the same server never share a sign-in. Controllers are
kept per client so optimistic lists and realtime subscriptions survive
Streamlit reruns. All coroutines run on one background event loop for
the same reason.
"""

import asyncio
import threading
from datetime import date
from typing import Optional

import streamlit as st

from organizer.access import ConfigurationError, NotRegisteredError, SignInError, new_client_key
from organizer.config import validate_all_settings
from organizer.features import (
    ExpensePlanner,
    MoodTracker,
    ProfileAdmin,
    ReminderBoard,
    ReminderFilter,
    RestaurantList,
    TripBoard,
)
from organizer.models.profile import VIEW_LABELS, Role, View
from organizer.models.records import (
    MOOD_LABELS,
    ItineraryCategory,
    PaymentSource,
    RecommenderQuery,
    RecordValidationError,
    ReminderColor,
    RestaurantCategory,
    Trip,
    TripExpenseCategory,
)
from organizer.orchestrator import AppComponents, ClientComponents, create_app_components
from organizer.services.ai import AIServiceError
from organizer.store import MutationResult


# Page configuration
st.set_page_config(
    page_title="Couple Organizer",
    page_icon="💞",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for the sticky-note board
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .note {
        padding: 14px;
        border-radius: 8px;
        margin: 6px 0;
        color: #2c3e50;
    }
    .note-yellow { background-color: #fff3b0; }
    .note-pink { background-color: #ffd1dc; }
    .note-blue { background-color: #cce5ff; }
    .note-green { background-color: #d4edda; }
    .guidance-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One long-lived loop, so realtime channels outlive a rerun."""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, daemon=True).start()
    return loop


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        return create_app_components(use_remote=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_remote=False)


def get_client() -> ClientComponents:
    """
    This browser client's session and screens, created on its first run.

    The client key travels in the `sid` query parameter, and through the
    OAuth `state` parameter across the Google redirect.
    """
    if "client" not in st.session_state:
        components = get_components()
        key = st.query_params.get("sid") or st.query_params.get("state")
        try:
            client = components.new_client(key)
        except ValueError:
            client = components.new_client(new_client_key())
        st.query_params["sid"] = client.client_key

        screens: dict = {}

        async def close_screens():
            # Runs on the event loop, also after a sign-out forced by an expired credential
            for controller in list(screens.values()):
                await controller.unmount()
            screens.clear()

        client.session.on_sign_out(close_screens)
        st.session_state["screens"] = screens
        st.session_state["client"] = client
    return st.session_state["client"]


def mounted(key: str, factory):
    """A screen controller, created and mounted once per signed-in session."""
    screens = st.session_state["screens"]
    if key not in screens:
        controller = factory()
        run_async(controller.mount())
        screens[key] = controller
    return screens[key]


def show_result(result: MutationResult, success: Optional[str] = None) -> None:
    if result.ok and result.error:
        st.warning(result.error)
    elif result.ok:
        if success:
            st.toast(success)
    elif result.rolled_back:
        st.error(f"Could not save, your change was undone: {result.error}")
    else:
        st.error(result.error or "Something went wrong.")


def main():
    """Main application entry point."""
    client = get_client()
    session = client.session

    if not session.is_signed_in:
        session.restore()
    if not session.is_signed_in:
        render_login_page(client)
        return

    profile = session.profile
    permitted = session.permitted_views

    # Sidebar navigation: only permitted views
    st.sidebar.title("💞 Couple Organizer")
    st.sidebar.markdown(f"Signed in as **{profile.name}**")
    st.sidebar.markdown("---")
    current = session.current_view
    requested = st.sidebar.radio(
        "Navigate to:",
        permitted,
        index=permitted.index(current) if current in permitted else 0,
        format_func=lambda v: VIEW_LABELS[v],
    )
    view = run_async(session.navigate(requested))

    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out"):
        run_async(session.sign_out())
        st.rerun()

    # Render gate: never trust the navigation alone
    if not run_async(session.check_render(view)):
        render_access_denied(view)
        return

    if view == View.DASHBOARD:
        render_dashboard_page(client)
    elif view == View.REMINDERS:
        render_reminders_page(client)
    elif view == View.EXPENSES:
        render_expenses_page(client)
    elif view == View.TRAVEL:
        render_travel_page(client)
    elif view == View.RESTAURANTS:
        render_restaurants_page(client)
    elif view == View.AI_RECOMMENDER:
        render_recommender_page(client)
    elif view == View.WELLNESS:
        render_wellness_page(client)
    elif view == View.ADMIN:
        render_admin_page(client)
    else:
        render_placeholder_page(view)


def render_login_page(client: ClientComponents):
    """Google sign-in through the OAuth redirect."""
    session = client.session
    st.title("💞 Couple Organizer")

    if session.expired_notice:
        st.warning(session.expired_notice)

    code = st.query_params.get("code")
    if code:
        st.query_params.clear()
        st.query_params["sid"] = client.client_key
        try:
            run_async(session.sign_in_with_code(code))
            st.rerun()
        except NotRegisteredError as e:
            st.error(
                f"{e.email} is not registered. Ask the administrator to create "
                "a profile for this Google account."
            )
        except ConfigurationError as e:
            st.markdown(f"""
            <div class="guidance-box">
                <h4>Database not ready</h4>
                <p>{e}</p>
            </div>
            """, unsafe_allow_html=True)
        except SignInError as e:
            st.error(f"Sign-in failed, please try again. ({e})")

    st.link_button("Sign in with Google", session.authorization_url(state=client.client_key), type="primary")


def render_access_denied(view: View):
    st.title("🔒 Access denied")
    st.info(f"Your profile does not include **{VIEW_LABELS[view]}**. Ask an administrator for access.")


def render_placeholder_page(view: View):
    st.title(VIEW_LABELS[view])
    st.info("This screen is not available in this client yet.")


def render_guidance(controller) -> bool:
    """Show the partition guidance panel. True when the screen may render."""
    check = controller.tenancy
    if check is None or check.ready:
        return True
    st.markdown(f"""
    <div class="guidance-box">
        <h4>Shared data is not available</h4>
        <p>{check.guidance}</p>
    </div>
    """, unsafe_allow_html=True)
    if st.button("Check again"):
        run_async(controller.mount())
        st.rerun()
    return False


def render_dashboard_page(client: ClientComponents):
    st.title(f"Hi, {client.session.profile.name} 👋")
    views = [v for v in client.session.permitted_views if v != View.DASHBOARD]
    cols = st.columns(3)
    for i, v in enumerate(views):
        with cols[i % 3]:
            if st.button(VIEW_LABELS[v], key=f"dash-{v.value}"):
                run_async(client.session.navigate(v))
                st.rerun()


def render_reminders_page(client: ClientComponents):
    """Shared sticky-note board."""
    board: ReminderBoard = mounted("screen:reminders", lambda: run_async(client.reminder_board()))
    st.title("📌 Reminders")

    which = st.radio(
        "Show",
        list(ReminderFilter),
        horizontal=True,
        format_func=lambda f: {"me": "Mine", "other": "Partner's", "all": "All"}[f.value],
    )

    with st.expander("➕ New reminder"):
        with st.form("new-reminder", clear_on_submit=True):
            title = st.text_input("Title")
            content = st.text_area("Details")
            due = st.date_input("Due date", value=None)
            color = st.selectbox("Color", list(ReminderColor), format_func=lambda c: c.value.title())
            subtasks = st.text_area("Subtasks (one per line)")
            if st.form_submit_button("Add", type="primary"):
                try:
                    result = run_async(board.add(
                        title, content=content, due_date=due, color=color,
                        subtasks=subtasks.splitlines(),
                    ))
                    show_result(result, "Reminder added")
                except RecordValidationError as e:
                    st.error(str(e))

    if board.reminders.last_error:
        st.warning(f"Last change failed: {board.reminders.last_error}")

    cols = st.columns(3)
    for i, reminder in enumerate(board.visible(which)):
        with cols[i % 3]:
            due = f"<br><small>Due {reminder.due_date:%d/%m}</small>" if reminder.due_date else ""
            st.markdown(
                f'<div class="note note-{reminder.color.value}"><b>{reminder.title}</b>'
                f'<br>{reminder.content or ""}{due}</div>',
                unsafe_allow_html=True,
            )
            for subtask in reminder.subtasks or []:
                checked = st.checkbox(subtask.text, value=subtask.is_done, key=f"st-{subtask.id}")
                if checked != subtask.is_done:
                    show_result(run_async(board.toggle_subtask(reminder.id, subtask.id)))
                    st.rerun()
            done_col, delete_col = st.columns(2)
            pending = board.reminders.is_pending(reminder.id)
            if done_col.button("Done", key=f"done-{reminder.id}", disabled=pending):
                show_result(run_async(board.mark_done(reminder.id)), "Marked done")
                st.rerun()
            if delete_col.button("Delete", key=f"del-{reminder.id}", disabled=pending):
                show_result(run_async(board.delete(reminder.id)))
                st.rerun()


def render_expenses_page(client: ClientComponents):
    """Monthly planning: expenses, recurring expenses, goals, closing."""
    planner: ExpensePlanner = mounted("screen:expenses", client.expense_planner)
    st.title("💰 Planning")
    if not render_guidance(planner):
        return
    if planner.schema_error:
        st.error(f"Database problem: {planner.schema_error}")
        return

    month = st.date_input("Month", value=planner.month)
    if month.replace(day=1) != planner.month:
        run_async(planner.select_month(month))

    summary = planner.summary()
    cols = st.columns(len(summary.by_source) + 1)
    for col, (source, totals) in zip(cols, summary.by_source.items()):
        col.metric(source.value, f"R$ {totals.total:,.2f}", f"R$ {totals.unpaid:,.2f} unpaid", delta_color="off")
    cols[-1].metric("Total", f"R$ {summary.total:,.2f}")

    expenses_tab, recurring_tab, goals_tab, closing_tab = st.tabs(
        ["Expenses", "Recurring", "Goals", "Monthly closing"]
    )

    with expenses_tab:
        with st.form("new-expense", clear_on_submit=True):
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=10.0)
            due = st.date_input("Due date", value=date.today())
            source = st.selectbox("Paid from", list(PaymentSource), format_func=lambda s: s.value)
            if st.form_submit_button("Add expense", type="primary"):
                try:
                    show_result(run_async(planner.add_expense(description, amount, due, source)), "Expense added")
                except RecordValidationError as e:
                    st.error(str(e))
        for expense in planner.expenses:
            c1, c2, c3, c4 = st.columns([4, 2, 1, 1])
            c1.write(f"{expense.description} · {expense.payment_source.value}")
            c2.write(f"R$ {expense.amount:,.2f}")
            paid = c3.checkbox("Paid", value=expense.is_paid, key=f"paid-{expense.id}")
            if paid != expense.is_paid:
                show_result(run_async(planner.toggle_paid(expense.id)))
                st.rerun()
            if c4.button("🗑", key=f"del-exp-{expense.id}"):
                show_result(run_async(planner.delete_expense(expense.id)))
                st.rerun()

    with recurring_tab:
        with st.form("new-recurring", clear_on_submit=True):
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=10.0, key="rec-amount")
            day = st.number_input("Day of month", min_value=1, max_value=31, value=1)
            start = st.date_input("Starts", value=date.today())
            end = st.date_input("Ends", value=None)
            sync = st.checkbox("Add to Google Calendar")
            if st.form_submit_button("Save", type="primary"):
                try:
                    result = run_async(planner.save_recurring(
                        description, amount, int(day), start, end, sync_calendar=sync,
                    ))
                    show_result(result, "Recurring expense saved")
                    if not client.session.is_signed_in:
                        st.rerun()
                except RecordValidationError as e:
                    st.error(str(e))
        for recurring in planner.recurring:
            c1, c2, c3 = st.columns([5, 2, 1])
            linked = " 📅" if recurring.google_calendar_event_id else ""
            c1.write(f"Day {recurring.day_of_month}: {recurring.description}{linked}")
            c2.write(f"R$ {recurring.amount:,.2f}")
            if c3.button("🗑", key=f"del-rec-{recurring.id}"):
                show_result(run_async(planner.delete_recurring(recurring.id)))
                st.rerun()

    with goals_tab:
        with st.form("new-goal", clear_on_submit=True):
            name = st.text_input("Goal")
            target = st.number_input("Target", min_value=0.0, step=100.0)
            if st.form_submit_button("Create goal", type="primary"):
                try:
                    show_result(run_async(planner.save_goal(name, target)), "Goal created")
                except RecordValidationError as e:
                    st.error(str(e))
        for goal in planner.goals:
            st.write(f"**{goal.name}** · R$ {goal.current_amount:,.2f} of R$ {goal.target_amount:,.2f}")
            st.progress(goal.progress)
            c1, c2, c3 = st.columns([3, 1, 1])
            delta = c1.number_input("Amount", step=50.0, key=f"delta-{goal.id}", label_visibility="collapsed")
            if c2.button("Move", key=f"move-{goal.id}"):
                show_result(run_async(planner.goal_transaction(goal.id, delta)))
                st.rerun()
            if c3.button("Archive", key=f"arch-{goal.id}"):
                show_result(run_async(planner.archive_goal(goal.id)))
                st.rerun()

    with closing_tab:
        closing = planner.closing
        with st.form("closing"):
            income_a = st.number_input("Income (Nicolas)", value=closing.income_nicolas if closing else 0.0)
            income_b = st.number_input("Income (Ana)", value=closing.income_ana if closing else 0.0)
            allocations = {}
            for goal in planner.goals:
                previous = closing.goal_allocations.get(goal.id, 0.0) if closing else 0.0
                allocations[goal.id] = st.number_input(f"To {goal.name}", value=previous, key=f"alloc-{goal.id}")
            notes = st.text_area("Notes", value=(closing.notes or "") if closing else "")
            if st.form_submit_button("Save closing", type="primary"):
                show_result(run_async(planner.save_closing(income_a, income_b, allocations, notes)), "Closing saved")


def render_travel_page(client: ClientComponents):
    """Trips, each with itinerary, expenses and gallery."""
    board: TripBoard = mounted("screen:trips", client.trip_board)
    st.title("✈️ Travel")
    if not render_guidance(board):
        return

    with st.expander("➕ New trip"):
        with st.form("new-trip", clear_on_submit=True):
            name = st.text_input("Name")
            destination = st.text_input("Destination")
            start = st.date_input("Start", value=None)
            end = st.date_input("End", value=None)
            budget = st.number_input("Budget", min_value=0.0, step=100.0)
            if st.form_submit_button("Create", type="primary"):
                try:
                    show_result(run_async(board.save_trip({
                        "name": name, "destination": destination,
                        "start_date": start, "end_date": end, "budget": budget or None,
                    })), "Trip created")
                except RecordValidationError as e:
                    st.error(str(e))

    trips = board.trips.items
    if not trips:
        st.info("No trips yet.")
        return
    trip: Trip = st.selectbox("Trip", trips, format_func=lambda t: f"{t.name} · {t.destination}")
    if board.trips.is_pending(trip.id):
        st.info("Saving trip...")
        return

    detail = mounted(f"screen:trip:{trip.id}", lambda: client.trip_detail(trip))
    itinerary_tab, expenses_tab, gallery_tab = st.tabs(["Itinerary", "Expenses", "Gallery"])

    with itinerary_tab:
        with st.form("new-item", clear_on_submit=True):
            description = st.text_input("What")
            item_date = st.date_input("When", value=trip.start_date or date.today())
            category = st.selectbox("Category", list(ItineraryCategory), format_func=lambda c: c.value.title())
            cost = st.number_input("Cost", min_value=0.0, step=10.0)
            if st.form_submit_button("Add", type="primary"):
                try:
                    show_result(run_async(detail.save_itinerary_item(
                        description, item_date, category, cost=cost or None,
                    )))
                except RecordValidationError as e:
                    st.error(str(e))
        if client.app.itinerary_assistant and st.button("✨ Suggest activities"):
            try:
                ideas = run_async(client.app.itinerary_assistant.suggest(trip, detail.itinerary.items))
                for idea in ideas:
                    st.write(f"- {idea.description} ({idea.category.value})")
            except AIServiceError as e:
                st.error(f"Suggestions unavailable: {e}")
        for item in detail.itinerary:
            c1, c2, c3 = st.columns([5, 1, 1])
            c1.write(f"{item.item_date:%d/%m} · {item.description}")
            done = c2.checkbox("Done", value=item.is_completed, key=f"it-{item.id}")
            if done != item.is_completed:
                show_result(run_async(detail.toggle_completed(item.id)))
                st.rerun()
            if c3.button("🗑", key=f"del-it-{item.id}"):
                show_result(run_async(detail.delete_itinerary_item(item.id)))
                st.rerun()

    with expenses_tab:
        if detail.remaining_budget is not None:
            st.metric("Remaining budget", f"R$ {detail.remaining_budget:,.2f}")
        with st.form("new-trip-expense", clear_on_submit=True):
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=10.0)
            category = st.selectbox("Category", list(TripExpenseCategory), format_func=lambda c: c.value.title())
            if st.form_submit_button("Add", type="primary"):
                try:
                    show_result(run_async(detail.save_expense(description, amount, category, date.today())))
                except RecordValidationError as e:
                    st.error(str(e))
        for expense in detail.expenses:
            c1, c2 = st.columns([6, 1])
            c1.write(f"{expense.description} · R$ {expense.amount:,.2f}")
            if c2.button("🗑", key=f"del-te-{expense.id}"):
                show_result(run_async(detail.delete_expense(expense.id)))
                st.rerun()

    with gallery_tab:
        upload = st.file_uploader("Add a photo", type=["jpg", "jpeg", "png"])
        caption = st.text_input("Caption")
        if upload and st.button("Upload", type="primary"):
            try:
                show_result(run_async(detail.add_photo(upload.getvalue(), caption, upload.type)), "Photo added")
            except RecordValidationError as e:
                st.error(str(e))
        cols = st.columns(3)
        for i, photo in enumerate(detail.gallery):
            with cols[i % 3]:
                st.image(photo.image_url, caption=photo.caption)
                if st.button("Remove", key=f"del-ph-{photo.id}"):
                    show_result(run_async(detail.delete_photo(photo.id)))
                    st.rerun()


def render_restaurants_page(client: ClientComponents):
    """The couple's restaurant list, reviews and the date roulette."""
    restaurants: RestaurantList = mounted("screen:restaurants", client.restaurant_list)
    st.title("🍴 Restaurants")
    if not render_guidance(restaurants):
        return

    with st.expander("➕ Add a restaurant"):
        with st.form("new-restaurant", clear_on_submit=True):
            name = st.text_input("Name")
            category = st.selectbox("Category", list(RestaurantCategory), format_func=lambda c: c.value)
            cuisine = st.text_input("Cuisine")
            city = st.text_input("City", value="Curitiba")
            price = st.select_slider("Price", options=[1, 2, 3, 4], format_func=lambda p: "$" * p)
            if st.form_submit_button("Add", type="primary"):
                try:
                    show_result(run_async(restaurants.add_restaurant({
                        "name": name, "category": category, "cuisine": cuisine or None,
                        "city": city, "price_range": price,
                    })), "Restaurant added")
                except RecordValidationError as e:
                    st.error(str(e))

    c1, c2 = st.columns(2)
    favorites_only = c1.checkbox("Favorites only")
    if c2.button("🎲 Pick a place for us"):
        pick = restaurants.roulette(favorites_only=favorites_only)
        if pick is None:
            st.info("Nothing to pick from yet.")
        else:
            st.success(f"Tonight: **{pick.name}**")

    f1, f2, f3 = st.columns(3)
    category = f1.selectbox(
        "Category", [None] + list(RestaurantCategory),
        format_func=lambda c: "All" if c is None else c.value, key="filter-category",
    )
    visited = f2.selectbox(
        "Visited", [None, True, False],
        format_func=lambda v: {None: "All", True: "Been there", False: "Not yet"}[v],
    )
    search = f3.text_input("Search")

    me = client.session.profile.name
    for entry in restaurants.filtered(category=category, favorites_only=favorites_only, visited=visited, search=search):
        r = entry.restaurant
        heart = "❤️ " if entry.is_favorited else ""
        price = "$" * r.price_range if r.price_range else ""
        with st.expander(f"{heart}{r.name} · {r.category.value} {price}"):
            if r.cuisine:
                st.caption(f"{r.cuisine} · {r.city}")
            for review in r.reviews:
                st.write(f"**{review.user}** {'⭐' * review.rating} {review.comment}")
            if r.wants_to_go:
                st.caption("Wants to go: " + ", ".join(r.wants_to_go))

            own = r.review_by(me)
            rating = st.slider("Your rating", 0, 5, value=own.rating if own else 0, key=f"rate-{r.id}")
            comment = st.text_input("Comment", value=own.comment if own else "", key=f"comment-{r.id}")
            b1, b2, b3, b4 = st.columns(4)
            if b1.button("Save review", key=f"review-{r.id}"):
                try:
                    show_result(run_async(restaurants.save_review(r.id, rating, comment)), "Review saved")
                except RecordValidationError as e:
                    st.error(str(e))
            if b2.button("Unfavorite" if entry.is_favorited else "Favorite", key=f"fav-{r.id}"):
                show_result(run_async(restaurants.toggle_favorite(r.id)))
                st.rerun()
            if b3.button("Want to go", key=f"want-{r.id}"):
                show_result(run_async(restaurants.toggle_wants_to_go(r.id)))
                st.rerun()
            if b4.button("Remove", key=f"remove-{r.id}"):
                show_result(run_async(restaurants.remove_from_list(r.id)))
                st.rerun()


def render_recommender_page(client: ClientComponents):
    """AI restaurant recommender with autocomplete."""
    st.title("🍽️ What should we eat?")
    recommender = client.recommender
    if recommender is None:
        st.info("AI features are not configured.")
        return
    restaurants: RestaurantList = mounted("screen:restaurants", client.restaurant_list)

    cravings = st.text_input("Craving", placeholder="e.g. spicy ramen")
    if client.autocomplete and cravings:
        suggestions = run_async(client.autocomplete.on_input(cravings))
        if suggestions:
            st.caption("Try: " + " · ".join(suggestions))
    exclusions = st.text_input("Anything to avoid?")

    if recommender.history:
        st.caption("Recent: " + " · ".join(q.cravings for q in recommender.history))

    if st.button("🔍 Recommend", type="primary"):
        with st.spinner("Searching..."):
            try:
                results = run_async(recommender.recommend(
                    RecommenderQuery(cravings=cravings, exclusions=exclusions),
                    known_restaurants=restaurants.known_names(),
                    location=client.session.profile.address,
                ))
            except RecordValidationError as e:
                st.error(str(e))
                return
            except AIServiceError as e:
                st.error(f"Could not get recommendations: {e}")
                return
        if not results:
            st.info("Nothing new found. Try a different craving.")
        for r in results:
            st.markdown(f"**{r.restaurant_name}** · {r.category} · {'$' * r.price_range}")
            st.write(r.reason)
            if r.maps_url:
                st.markdown(f"[Open in Maps]({r.maps_url})")


def render_wellness_page(client: ClientComponents):
    """Today's moods, and a suggestion that takes them into account."""
    moods: MoodTracker = mounted("screen:wellness", lambda: run_async(client.mood_tracker()))
    st.title("🌿 Wellness")

    c1, c2 = st.columns(2)
    mine = moods.my_mood
    c1.metric("You", mine.label if mine else "Not set")
    theirs = moods.partner_mood
    c2.metric(moods.partner_name or "Partner", theirs.label if theirs else "Not set")

    options = sorted(MOOD_LABELS, reverse=True)
    choice = st.radio(
        "How are you feeling today?", options, horizontal=True,
        index=options.index(mine.mood) if mine else None,
        format_func=lambda m: MOOD_LABELS[m],
    )
    if choice is not None and (mine is None or choice != mine.mood):
        try:
            show_result(run_async(moods.set_mood(choice)), "Mood saved")
            st.rerun()
        except RecordValidationError as e:
            st.error(str(e))

    st.markdown("---")
    if client.app.wellness is None:
        st.info("AI features are not configured.")
        return
    note = st.text_area("Anything else?")
    if st.button("Suggest something", type="primary"):
        try:
            suggestion = run_async(client.app.wellness.suggest(
                MOOD_LABELS[choice].lower() if choice else "",
                note,
                moods_today=moods.mood_summary(),
            ))
            st.success(suggestion)
        except RecordValidationError as e:
            st.error(str(e))
        except AIServiceError as e:
            st.error(f"No suggestion right now: {e}")


def render_admin_page(client: ClientComponents):
    """Profiles and their view permissions."""
    admin: ProfileAdmin = mounted("screen:admin", client.profile_admin)
    st.title("🛠️ Admin")
    if admin.schema_error:
        st.error(f"Database problem: {admin.schema_error}")
        return

    with st.expander("➕ New profile"):
        with st.form("new-profile", clear_on_submit=True):
            email = st.text_input("Google email")
            name = st.text_input("Name")
            role = st.selectbox("Role", list(Role), format_func=lambda r: r.value.title())
            couple_id = st.text_input("Couple id")
            if st.form_submit_button("Create", type="primary"):
                try:
                    show_result(run_async(admin.create_profile(email, name, role, couple_id)), "Profile created")
                except RecordValidationError as e:
                    st.error(str(e))

    for profile in admin.profiles:
        role = profile.role.value if profile.role else "no role"
        with st.expander(f"{profile.name} · {profile.email} · {role}"):
            views = st.multiselect(
                "Allowed views (empty = role defaults)",
                list(View),
                default=profile.allowed_views or [],
                format_func=lambda v: VIEW_LABELS[v],
                key=f"views-{profile.email}",
            )
            if st.button("Save views", key=f"save-{profile.email}"):
                show_result(run_async(admin.set_allowed_views(profile.email, views)), "Saved")
                st.rerun()

    render_connection_status()


def render_connection_status():
    """Which external services are configured."""
    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Supabase (Data, Realtime, Storage)", "supabase"),
        ("Gemini (AI)", "gemini"),
        ("Google OAuth (Sign-in, Calendar)", "google_oauth"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")


if __name__ == "__main__":
    main()
