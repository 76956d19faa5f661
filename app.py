"""
app.py
Streamlit admin console for the consulados network.
Run: streamlit run app.py
"""

from __future__ import annotations

from dataclasses import asdict, replace
from datetime import date

import pandas as pd
import streamlit as st

import auth
import db
import identifiers
import officers
import transfers
import utils
from errors import ConsoleError, RemoteStoreError, ValidationError
from logger import configure_logging, get_logger
from models import (
    CATEGORIES,
    DUES_STATUSES,
    GENDERS,
    TRANSFER_PENDING,
    Chapter,
    Member,
    gender_label,
    role_label,
)
from roster import RosterCache
from settings import get_settings
from storage import build_blob_store, upload_with_tracking

st.set_page_config(page_title="Consulados Admin", layout="wide")

logger = get_logger(__name__)

PAGE_SIZE = 25


@st.cache_resource
def get_services():
    """One store, cache and blob store per server process."""
    settings = get_settings()
    configure_logging(settings)
    store = db.build_store(settings)
    store.init_db(auth.hash_password(settings.DEFAULT_ADMIN_PASSWORD), settings.DEFAULT_ADMIN_USERNAME)
    cache = RosterCache(store, settings.CENTRAL_CHAPTER_NAME)
    cache.init()
    cache.assign_unaffiliated_to_central()
    version = {"value": 0}

    def bump() -> None:
        version["value"] += 1

    cache.subscribe(bump)
    return settings, store, cache, build_blob_store(settings), version


@st.cache_data
def status_table(version: int, _cache: RosterCache, today: date) -> pd.DataFrame:
    return utils.status_summary(_cache.get_members(), today, _cache.central_chapter_name)


def run_action(action, success: str) -> bool:
    """Run a core operation; validation errors inline, store errors as a retry message."""
    try:
        action()
    except ValidationError as e:
        st.error(str(e))
        return False
    except RemoteStoreError:
        logger.exception("Store error during %r", success)
        st.error("Could not reach the database. Please try again.")
        return False
    st.success(success)
    return True


def require_login():
    if "user" not in st.session_state:
        st.session_state.user = None


def logout():
    st.session_state.user = None
    st.success("Logged out.")


def login_screen(store):
    st.title("🔐 Consulados Admin")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Username", value="admin")
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            user = auth.login(store, username, password)
            if user:
                st.session_state.user = user
                st.rerun()
            else:
                st.error("Invalid username or password.")

    with col2:
        st.info(
            "First run creates a default admin account.\n\n"
            "You will be forced to change its password on first login."
        )


def force_change_password_screen(store):
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the console.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        if run_action(lambda: auth.change_password(store, st.session_state.user.username, new1), "Password updated."):
            st.rerun()


# ---------- Scope helpers ----------

def visible_chapters(cache: RosterCache, user: auth.SessionUser) -> list[Chapter]:
    if auth.is_admin(user):
        return cache.get_chapters()
    own = cache.get_chapter(user.chapter_id or "")
    return [own] if own else []


def date_field(label: str, stored: str | None, key: str) -> str:
    raw = st.text_input(label, value=utils.display_date(stored), key=key, placeholder="DD/MM/YYYY")
    return utils.format_as_user_types(raw) if raw.strip().isdigit() else raw


# ---------- Pages ----------

def dashboard_page(cache: RosterCache, version: int, user: auth.SessionUser):
    st.header("📊 Dashboard")

    today = date.today()
    table = status_table(version, cache, today)
    if not auth.is_admin(user):
        names = [c.name for c in visible_chapters(cache, user)]
        table = table[table["chapter"].isin(names)]

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Members", int(table["total"].sum()) if not table.empty else 0)
    for col, status in zip((c2, c3, c4), DUES_STATUSES):
        col.metric(status, int(table[status].sum()) if not table.empty else 0)

    st.divider()
    st.subheader("Members by chapter and dues status")
    st.dataframe(table, use_container_width=True, hide_index=True)

    st.subheader("Pending incoming transfers")
    pending = []
    for chapter in visible_chapters(cache, user):
        pending += [t for t in cache.get_transfers(chapter.name)["incoming"] if t.status == TRANSFER_PENDING]
    if pending:
        st.dataframe(pd.DataFrame([asdict(t) for t in pending]), use_container_width=True, hide_index=True)
    else:
        st.caption("No pending transfers.")


def member_form(cache: RosterCache, store, blobs, settings, user: auth.SessionUser, existing: Member | None):
    gender = existing.gender if existing else "M"
    if existing:
        st.subheader(f"✏️ Edit {gender_label('Socio', gender)} (N° {existing.membership_number})")
    else:
        st.subheader("➕ New member")

    chapter_names = [c.name for c in visible_chapters(cache, user)]
    role_options = auth.assignable_roles(user, existing.role if existing else None)
    col1, col2, col3 = st.columns(3)
    with col1:
        first_name = st.text_input("First name", value=existing.first_name if existing else "")
        last_name = st.text_input("Last name", value=existing.last_name if existing else "")
        national_id = st.text_input("National ID", value=existing.national_id if existing else "")
        gender = st.selectbox("Gender", GENDERS, index=GENDERS.index(gender))
    with col2:
        category = st.selectbox(
            "Category", CATEGORIES, index=CATEGORIES.index(existing.category) if existing and existing.category in CATEGORIES else 1
        )
        email = st.text_input("Email", value=existing.email if existing else "")
        phone = st.text_input("Phone", value=existing.phone if existing else "")
        role = st.selectbox(
            "Role", role_options,
            index=role_options.index(existing.role) if existing and existing.role in role_options else 1,
            format_func=lambda r: role_label(r, gender),
        )
    with col3:
        birth_date = date_field(gender_label("Nacido", gender) + " el", existing.birth_date if existing else None, "birth")
        join_date = date_field("Join date", existing.join_date if existing else utils.today_iso(), "join")
        last_payment = date_field("Last payment", existing.last_payment_date if existing else None, "paid")
        current = (existing.chapter if existing else None) or cache.central_chapter_name
        chapter = st.selectbox(
            "Chapter", chapter_names, index=chapter_names.index(current) if current in chapter_names else 0,
            disabled=bool(existing),
            help="Existing members change chapter through a transfer request.",
        )

    st.caption(f"Dues status: **{utils.infer_status(last_payment, date.today())}**")

    errors = utils.validate_member_inputs(first_name, last_name, category, birth_date, last_payment)
    for e in errors:
        st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors)):
        data = dict(
            first_name=first_name, last_name=last_name, national_id=national_id.strip(),
            gender=gender, category=category, email=email.strip(), phone=phone.strip(), role=role,
            birth_date=birth_date, join_date=join_date, last_payment_date=last_payment,
        )

        def _save_member():
            if existing:
                member = replace(existing, **data)
                auth.check_member_edit(cache, user, member, existing)
                cache.update_member(member)
            else:
                member = Member(id="", membership_number="", chapter=chapter, **data)
                auth.check_member_edit(cache, user, member)
                cache.add_member(member)

        ok = run_action(_save_member, "Member updated." if existing else "Member added.")
        if ok:
            st.rerun()

    if not existing:
        return

    st.divider()
    col_a, col_b = st.columns(2)
    with col_a:
        st.subheader("Membership number")
        candidate = st.text_input("New id / number", value=existing.id, max_chars=10)
        if candidate.strip() and candidate.strip() != existing.id:
            verdict = identifiers.propose_new_id(cache, existing.id, candidate)
            if verdict == identifiers.ID_TAKEN:
                st.error("That number is already in use.")
            elif st.button("Apply new number"):
                if run_action(lambda: identifiers.commit_id_change(cache, existing.id, candidate), "Number changed."):
                    st.session_state.edit_member_id = candidate.strip()
                    st.rerun()
    with col_b:
        st.subheader("Photo")
        if existing.photo_url:
            st.image(existing.photo_url, width=120)
        photo = st.file_uploader("Upload photo", type=["jpg", "jpeg", "png"])
        if photo is not None and st.button("Save photo"):
            def _save_photo():
                url = upload_with_tracking(
                    blobs, store, bucket=settings.STORAGE_BUCKET, folder="socios", entity_type="socio",
                    entity_id=existing.id, field_name="avatar", filename=photo.name,
                    data=photo.getvalue(), content_type=photo.type or "image/jpeg",
                    uploaded_by=st.session_state.user.id,
                )
                cache.update_member(replace(existing, photo_url=url))
            if run_action(_save_photo, "Photo saved."):
                st.rerun()

    st.subheader("Transfer history")
    history = cache.get_member_transfers(existing.id)
    if history:
        st.dataframe(pd.DataFrame([asdict(t) for t in history]), use_container_width=True, hide_index=True)
    else:
        st.caption("No transfer requests for this member.")


def members_page(cache: RosterCache, store, blobs, settings, user: auth.SessionUser):
    st.header("👥 Members")

    chapters = visible_chapters(cache, user)
    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name / national id / number)")
        status_filter = st.selectbox("Dues status", ["All", *DUES_STATUSES])
        options = (["All"] if auth.is_admin(user) else []) + [c.name for c in chapters]
        chapter_filter = st.selectbox("Chapter", options) if options else None

    if chapter_filter in (None, "All"):
        members = cache.get_members() if auth.is_admin(user) else []
    else:
        members = cache.get_members(chapter_filter)
    members = utils.filter_members(members, search, status_filter, date.today())

    page = st.number_input("Page", min_value=1, value=1, step=1)
    rows, total_pages = utils.paginate(members, int(page), PAGE_SIZE)
    st.caption(f"{len(members)} member(s), page {min(int(page), total_pages)} of {total_pages}")
    df = utils.members_frame(rows, date.today())
    st.dataframe(df, use_container_width=True, hide_index=True)

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select member")
        labels = {f"{m.last_name.upper()}, {m.first_name} ({m.membership_number})": m.id for m in rows}
        chosen = st.selectbox("Member", ["(none)", *labels])

    with colB:
        if chosen != "(none)":
            member_id = labels[chosen]
            st.subheader("Member actions")
            c1, c2 = st.columns(2)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_member_id = member_id
                    st.rerun()
            with c2:
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    if run_action(lambda: cache.delete_member(member_id), "Member deleted."):
                        st.rerun()

    st.divider()

    existing = cache.get_member(st.session_state.get("edit_member_id") or "")
    if existing:
        member_form(cache, store, blobs, settings, user, existing)
        if st.button("Cancel edit"):
            st.session_state.edit_member_id = None
            st.rerun()
    else:
        member_form(cache, store, blobs, settings, user, None)


def chapters_page(cache: RosterCache, store, blobs, settings, user: auth.SessionUser):
    st.header("🏛️ Chapters")

    chapters = visible_chapters(cache, user)
    df = pd.DataFrame(
        [
            {
                "name": c.name, "city": c.city, "country": c.country,
                "president": c.chief_officer_name or "Vacante",
                "referente": c.liaison_officer_name or "Vacante",
                "members": len(cache.get_members(c.name)),
                "official": c.is_official,
            }
            for c in chapters
        ]
    )
    st.dataframe(df, use_container_width=True, hide_index=True)

    names = {c.name: c for c in chapters}
    choices = (["(new chapter)"] if auth.is_admin(user) else []) + list(names)
    if not choices:
        return
    chosen = st.selectbox("Chapter", choices)
    existing = names.get(chosen)
    chapter = existing or Chapter(id="", name="")

    candidates = ["", *sorted(m.full_name for m in cache.get_members(chapter.name or None) if m.full_name)]
    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Name", value=chapter.name, disabled=not auth.is_admin(user))
        city = st.text_input("City", value=chapter.city)
        country = st.text_input("Country", value=chapter.country)
        address = st.text_input("Address", value=chapter.address)
        email = st.text_input("Email", value=chapter.email)
        phone = st.text_input("Phone", value=chapter.phone)
    with col2:
        chief = st.selectbox(
            "Presidente", candidates,
            index=candidates.index(chapter.chief_officer_name) if chapter.chief_officer_name in candidates else 0,
            format_func=lambda n: n or "Vacante",
        )
        liaison = st.selectbox(
            "Referente", candidates,
            index=candidates.index(chapter.liaison_officer_name) if chapter.liaison_officer_name in candidates else 0,
            format_func=lambda n: n or "Vacante",
        )
        secretary = st.text_input("Secretary", value=chapter.secretary)
        treasurer = st.text_input("Treasurer", value=chapter.treasurer)
        is_official = st.checkbox("Official", value=chapter.is_official, disabled=not auth.is_admin(user))
        official_since = date_field("Official since", chapter.official_since, "official_since")

    if st.button("Save chapter", type="primary"):
        def _save_chapter():
            updated = replace(
                chapter, name=name, city=city.strip(), country=country.strip(), address=address.strip(),
                email=email.strip(), phone=phone.strip(), chief_officer_name=chief, liaison_officer_name=liaison,
                secretary=secretary.strip(), treasurer=treasurer.strip(), is_official=is_official,
                official_since=utils.normalize_date(official_since, "official since"),
            )
            officers.save_chapter(cache, updated)
        if run_action(_save_chapter, "Chapter saved."):
            st.rerun()

    if existing:
        st.subheader("Logo")
        if existing.logo_url:
            st.image(existing.logo_url, width=120)
        logo = st.file_uploader("Upload logo", type=["jpg", "jpeg", "png"], key="logo")
        if logo is not None and st.button("Save logo"):
            def _save_logo():
                url = upload_with_tracking(
                    blobs, store, bucket=settings.STORAGE_BUCKET, folder="consulados", entity_type="consulado",
                    entity_id=existing.id, field_name="logo", filename=logo.name,
                    data=logo.getvalue(), content_type=logo.type or "image/jpeg",
                    uploaded_by=user.id,
                )
                cache.update_chapter(replace(existing, logo_url=url))
            if run_action(_save_logo, "Logo saved."):
                st.rerun()

    if existing and auth.is_admin(user) and not cache.is_central(existing.name):
        st.divider()
        st.subheader("Delete chapter")
        typed = st.text_input(f"Type {existing.name!r} to confirm")
        if st.button("Delete chapter", type="secondary"):
            if run_action(lambda: cache.delete_chapter(existing.id, typed), "Chapter deleted."):
                st.rerun()


def transfers_page(cache: RosterCache, user: auth.SessionUser):
    st.header("🔁 Transfers")

    chapters = visible_chapters(cache, user)
    if not chapters:
        st.info("No chapter assigned to this account.")
        return
    chapter = {c.name: c for c in chapters}[st.selectbox("Chapter", [c.name for c in chapters])]
    buckets = cache.get_transfers(chapter.name)

    st.subheader("Incoming")
    for t in buckets["incoming"]:
        c1, c2, c3 = st.columns([3, 1, 1])
        c1.write(f"**{t.member_name}** from {t.from_chapter_name} ({t.request_date}) · {t.status}")
        if t.status == TRANSFER_PENDING:
            if c2.button("Approve", key=f"ap-{t.id}"):
                if run_action(lambda t=t: transfers.approve_transfer(cache, t.id, actor=user), "Transfer approved."):
                    st.rerun()
            if c3.button("Reject", key=f"rj-{t.id}"):
                if run_action(lambda t=t: transfers.reject_transfer(cache, t.id, actor=user), "Transfer rejected."):
                    st.rerun()
    if not buckets["incoming"]:
        st.caption("No incoming requests.")

    st.subheader("Outgoing")
    for t in buckets["outgoing"]:
        c1, c2 = st.columns([4, 1])
        c1.write(f"**{t.member_name}** to {t.to_chapter_name} ({t.request_date}) · {t.status}")
        if t.status == TRANSFER_PENDING and c2.button("Cancel", key=f"cn-{t.id}"):
            if run_action(lambda t=t: transfers.cancel_transfer(cache, t.id, actor=user), "Transfer cancelled."):
                st.rerun()
    if not buckets["outgoing"]:
        st.caption("No outgoing requests.")

    st.divider()
    st.subheader("Propose a transfer")
    members = {f"{m.full_name} ({m.membership_number})": m.id for m in cache.get_members(chapter.name)}
    targets = {c.name: c.id for c in cache.get_chapters() if c.id != chapter.id}
    if not members or not targets:
        st.caption("Nothing to transfer.")
        return
    member_label = st.selectbox("Member", list(members))
    target_name = st.selectbox("Destination", list(targets))
    comment = st.text_area("Comment", value="")
    if st.button("Send request", type="primary"):
        if run_action(
            lambda: transfers.request_transfer(cache, members[member_label], targets[target_name], comment, actor=user),
            "Transfer requested.",
        ):
            st.rerun()


def reports_page(cache: RosterCache, user: auth.SessionUser):
    st.header("🧾 Reports")

    today = date.today()
    if auth.is_admin(user):
        members = cache.get_members()
        transfer_rows = cache.get_all_transfers()
    else:
        chapter = visible_chapters(cache, user)
        members = cache.get_members(chapter[0].name) if chapter else []
        transfer_rows = [t for t in cache.get_all_transfers() if chapter and chapter[0].name in (t.from_chapter_name, t.to_chapter_name)]

    st.subheader("Export members to CSV")
    if members:
        st.download_button(
            "Download members.csv",
            data=utils.members_to_csv_bytes(members, today),
            file_name="members.csv",
            mime="text/csv",
        )
    else:
        st.caption("No members to export.")

    st.divider()

    st.subheader("Export transfers to CSV")
    if transfer_rows:
        st.download_button(
            "Download transfers.csv",
            data=utils.transfers_to_csv_bytes(transfer_rows),
            file_name="transfers.csv",
            mime="text/csv",
        )
    else:
        st.caption("No transfers to export.")


def settings_page(cache: RosterCache, store, user: auth.SessionUser):
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if p1 != p2:
            st.error("Passwords do not match.")
        else:
            run_action(lambda: auth.change_password(store, user.username, p1), "Password updated.")

    if not auth.is_admin(user):
        return

    st.divider()
    st.subheader("New console account")
    chapters = {c.name: c.id for c in cache.get_chapters()}
    c1, c2 = st.columns(2)
    with c1:
        username = st.text_input("Username", key="new_username")
        full_name = st.text_input("Full name", key="new_full_name")
        password = st.text_input("Password", type="password", key="new_password")
    with c2:
        role = st.selectbox("Role", auth.USER_ROLES, index=1)
        chapter_name = st.selectbox("Chapter", ["", *chapters])
    if st.button("Create account"):
        run_action(
            lambda: auth.create_user(store, username, password, role, full_name, chapters.get(chapter_name)),
            "Account created.",
        )

    st.divider()
    st.subheader("Sample data")
    st.caption("Insert two chapters and four members for testing (adds new members each run).")
    if st.button("Insert sample data"):
        if run_action(lambda: utils.insert_sample_data(cache), "Sample data inserted."):
            st.rerun()

    st.subheader("Reload")
    if st.button("Reload from database"):
        if run_action(cache.init, "Roster reloaded."):
            st.rerun()


def main_app(settings, store, cache: RosterCache, blobs, version: dict):
    user: auth.SessionUser = st.session_state.user
    st.sidebar.title("🏛️ Consulados")
    st.sidebar.caption(f"Logged in as: {user.full_name} ({user.role})")

    pages = ["Dashboard", "Members", "Chapters", "Transfers", "Reports", "Settings"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if st.session_state.page == "Dashboard":
        dashboard_page(cache, version["value"], user)
    elif st.session_state.page == "Members":
        members_page(cache, store, blobs, settings, user)
    elif st.session_state.page == "Chapters":
        chapters_page(cache, store, blobs, settings, user)
    elif st.session_state.page == "Transfers":
        transfers_page(cache, user)
    elif st.session_state.page == "Reports":
        reports_page(cache, user)
    elif st.session_state.page == "Settings":
        settings_page(cache, store, user)


# --------- App entry ---------

def run():
    try:
        settings, store, cache, blobs, version = get_services()
    except ConsoleError:
        logger.exception("Console failed to start")
        st.error("Could not load data from the database. Check the connection settings and reload.")
        return
    require_login()

    if st.session_state.user is None:
        login_screen(store)
        return

    # Force password change on first login after DB creation
    if db.is_force_password_change(store):
        force_change_password_screen(store)
        return

    main_app(settings, store, cache, blobs, version)


if __name__ == "__main__":
    run()
