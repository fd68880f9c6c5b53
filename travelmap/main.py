"""Streamlit entrypoint for the family travel memories map."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

import pandas as pd
import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.append(str(PROJECT_ROOT))

from travelmap import config
from travelmap.errors import TravelMapError
from travelmap.services.face_extraction import FaceExtractor, FaceModelHandle, load_default_models
from travelmap.services.photo_uploads import PhotoUploadService
from travelmap.services.previews import PhotoPreviews
from travelmap.services.recognizer import IdentityMatcher
from travelmap.services.tagging import (
    NEW_MEMBER,
    TaggerFace,
    TaggingService,
    member_appearances,
    member_avatars,
    people_count,
    tagged_names,
    tile_size,
)
from travelmap.services.trips import CATALOG_BY_ISO, TripsService
from travelmap.storage.document_store import JsonDocumentStore
from travelmap.storage.family_store import FamilyStore
from travelmap.storage.object_store import LocalObjectStore
from travelmap.storage.photo_store import PhotoStore
from travelmap.storage.schemas import Photo
from travelmap.storage.trips_store import TripsStore, export_all_data
from travelmap.utils.i18n import continent_name, country_name, flag_emoji
from travelmap.utils.image_utils import UploadedImage, data_url_bytes
from travelmap.utils.password import check_password, is_configured

st.set_page_config(page_title="Карта путешествий", page_icon="🗺️", layout="wide")

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_CONTINENTS = "__all__"
TILE_WIDTHS = {"xl": 520, "lg": 420, "md": 320, "sm": 240}


@dataclass
class Services:
    trips: TripsService
    trips_store: TripsStore
    photos: PhotoStore
    family: FamilyStore
    uploads: PhotoUploadService
    tagging: TaggingService


@st.cache_resource(show_spinner="Открываем архив путешествий…")
def load_services() -> Services:
    documents = JsonDocumentStore(config.DOCUMENTS_DIR)
    objects = LocalObjectStore(config.OBJECTS_DIR, base_url=config.OBJECTS_BASE_URL)
    trips_store = TripsStore(documents)
    photos = PhotoStore(documents, objects)
    family = FamilyStore(documents)

    # Models load on first detection, not at startup.
    extractor = FaceExtractor(FaceModelHandle(load_default_models))
    matcher = IdentityMatcher(threshold=config.MATCH_THRESHOLD)

    return Services(
        trips=TripsService(trips_store, config.SEED_TRIPS_PATH),
        trips_store=trips_store,
        photos=photos,
        family=family,
        uploads=PhotoUploadService(photos, family, extractor, matcher, auto_assign=config.AUTO_ASSIGN_ON_UPLOAD),
        tagging=TaggingService(photos, family, extractor, matcher),
    )


def _attempt(action: str, func: Callable[..., T], *args, **kwargs) -> Optional[T]:
    """Run a store/service call, reporting failures in the page instead of crashing it."""
    try:
        return func(*args, **kwargs)
    except (TravelMapError, ValueError, OSError) as exc:
        logger.exception("%s failed", action)
        st.error(f"{action}: {exc}")
        return None


def _perform(action: str, func: Callable[..., object], *args, **kwargs) -> bool:
    try:
        func(*args, **kwargs)
    except (TravelMapError, ValueError, OSError) as exc:
        logger.exception("%s failed", action)
        st.error(f"{action}: {exc}")
        return False
    return True


def _init_session() -> None:
    st.session_state.setdefault("selected_iso", None)
    st.session_state.setdefault("open_photo_id", None)
    st.session_state.setdefault("tagger_rows", {})
    st.session_state.setdefault("uploader_round", 0)


def _previews(services: Services) -> PhotoPreviews:
    if "previews" not in st.session_state:
        previews = PhotoPreviews()
        previews.rebuild(_attempt("Загрузка фотографий", services.photos.all_photos) or [])
        st.session_state["previews"] = previews
    return st.session_state["previews"]


def _select_country(iso2: Optional[str]) -> None:
    st.session_state["selected_iso"] = iso2
    st.session_state["open_photo_id"] = None


# ---------------------------------------------------------------------------
# Password gate
# ---------------------------------------------------------------------------


def _password_gate() -> bool:
    if st.session_state.get(config.SESSION_AUTH_KEY):
        return True

    st.title("Введите пароль")
    st.caption("Эта страница защищена паролем.")
    if not is_configured(config.SITE_PASSWORD, config.SITE_PASSWORD_HASH):
        st.error("Пароль не настроен. Задайте SITE_PASSWORD или SITE_PASSWORD_HASH и перезапустите приложение.")

    with st.form("password_gate"):
        password = st.text_input("Пароль", type="password")
        submitted = st.form_submit_button("Войти")

    if submitted and password:
        if check_password(password, config.SITE_PASSWORD, config.SITE_PASSWORD_HASH):
            st.session_state[config.SESSION_AUTH_KEY] = True
            st.rerun()
        st.error("Неверный пароль")
    return False


# ---------------------------------------------------------------------------
# Header, stats, map
# ---------------------------------------------------------------------------


def _render_header(services: Services) -> None:
    profile = services.trips.data.profile
    st.title(profile.title or "Карта путешествий")
    if profile.subtitle:
        st.caption(profile.subtitle)

    if not st.session_state.get("celebrated"):
        st.balloons()
        st.session_state["celebrated"] = True

    stats = services.trips.travel_stats()
    cols = st.columns(3)
    cols[0].metric("Стран посещено", stats.countries_visited)
    cols[1].metric("Процент мира", f"{stats.world_percentage}%")
    cols[2].metric("Любимый континент", continent_name(stats.most_visited_continent))


def _render_map(services: Services, previews: PhotoPreviews) -> None:
    counts = previews.counts()
    rows = []
    for code in services.trips.visited_iso_codes():
        info = CATALOG_BY_ISO.get(code)
        if info is None:
            continue
        photo_count = counts.get(code, 0)
        rows.append(
            {
                "iso2": code,
                "name": country_name(code, info.name),
                "lat": info.lat,
                "lon": info.lon,
                "size": 120000 + 30000 * min(photo_count, 20),
                "color": "#e4572e" if photo_count else "#2e86ab",
            }
        )
    if not rows:
        st.info("Пока нет посещённых стран.")
        return
    st.map(pd.DataFrame(rows), latitude="lat", longitude="lon", size="size", color="color")


# ---------------------------------------------------------------------------
# Sidebar: country list
# ---------------------------------------------------------------------------


def _render_country_list(services: Services, previews: PhotoPreviews) -> None:
    st.sidebar.header("Страны")
    query = st.sidebar.text_input("Поиск", key="country_search")
    continent = st.sidebar.selectbox(
        "Континент",
        [ALL_CONTINENTS] + services.trips.continents(),
        format_func=lambda c: "Все" if c == ALL_CONTINENTS else continent_name(c),
    )

    counts = previews.counts()
    trips = services.trips.filter_trips(query, None if continent == ALL_CONTINENTS else continent)
    if not trips:
        st.sidebar.info("Ничего не найдено.")
    for trip in trips:
        label = f"{flag_emoji(trip.iso2)} {country_name(trip.iso2, trip.country_name)}"
        if trip.year:
            label += f" · {trip.year}"
        if counts.get(trip.iso2):
            label += f" · 📷 {counts[trip.iso2]}"
        st.sidebar.button(label, key=f"country_{trip.iso2}", on_click=_select_country, args=(trip.iso2,))

    with st.sidebar.expander("Добавить страну"):
        add_query = st.text_input("Найти страну", key="add_country_query")
        options = services.trips.add_options(add_query)
        if not options:
            st.caption("Нет подходящих стран.")
            return
        choice = st.selectbox(
            "Страна",
            options,
            format_func=lambda c: f"{flag_emoji(c.iso2)} {country_name(c.iso2, c.name)}",
            key="add_country_choice",
        )
        if st.button("Добавить", key="add_country_submit"):
            if _attempt("Добавление страны", services.trips.add_country, choice.iso2) is not None:
                _select_country(choice.iso2)
                st.rerun()


# ---------------------------------------------------------------------------
# Country panel
# ---------------------------------------------------------------------------


def _render_trip_editor(services: Services, iso2: str) -> None:
    trip = services.trips.trip_by_iso(iso2)
    if trip is None:
        return
    with st.form(f"trip_{iso2}"):
        year = st.text_input("Год", value=trip.year)
        cities = st.text_input("Города (через запятую)", value=", ".join(trip.cities))
        notes = st.text_area("Заметки", value=trip.notes)
        if st.form_submit_button("Сохранить"):
            city_list = [c.strip() for c in cities.split(",") if c.strip()]
            if _perform("Сохранение поездки", services.trips.update_trip, iso2, year=year.strip(), cities=city_list, notes=notes):
                st.success("Сохранено")


def _render_uploader(services: Services, previews: PhotoPreviews, iso2: str) -> None:
    files = st.file_uploader(
        "Добавить фотографии",
        accept_multiple_files=True,
        key=f"uploader_{iso2}_{st.session_state['uploader_round']}",
    )
    # Messages from the batch that triggered the last rerun.
    for level, message in st.session_state.pop("upload_notices", []):
        getattr(st, level)(message)
    if not files or not st.button("Загрузить", key=f"upload_{iso2}"):
        return

    uploads = [UploadedImage(name=f.name, content_type=f.type or "", data=f.getvalue()) for f in files]
    progress = st.progress(0.0)
    done: List[Photo] = []

    def on_photo(photo: Photo) -> None:
        previews.register(photo)
        done.append(photo)
        progress.progress(min(len(done) / len(uploads), 1.0))

    with st.spinner("Загружаем и ищем лица…"):
        result = services.uploads.upload_batch(iso2, uploads, on_photo=on_photo)

    notices = result.notices()
    if result.photos:
        st.session_state["upload_notices"] = notices
        st.session_state["uploader_round"] += 1
        st.rerun()
    for level, message in notices:
        getattr(st, level)(message)


def _render_collage(services: Services, photos: List[Photo]) -> None:
    if not photos:
        st.caption("Фотографий пока нет.")
        return
    cols = st.columns(3)
    for index, photo in enumerate(photos):
        with cols[index % 3]:
            data = _attempt("Чтение фото", services.photos.photo_bytes, photo.id)
            if data:
                st.image(data, width=TILE_WIDTHS[tile_size(photo)])
            count = people_count(photo)
            names = tagged_names(photo)
            badge = f"👥 {count}" if count else ""
            if names:
                badge += " · " + ", ".join(names)
            if photo.caption or badge:
                st.caption(" ".join(part for part in (photo.caption, badge) if part))
            if st.button("Открыть", key=f"open_{photo.id}"):
                st.session_state["open_photo_id"] = photo.id
                st.rerun()


def _member_option_label(option: str, names: dict, row: TaggerFace) -> str:
    if option == "":
        return "— не отмечать —"
    if option == NEW_MEMBER:
        return "➕ Новый человек"
    label = names.get(option, option)
    if option == row.matched_id and row.confidence is not None:
        label += f" (похоже, {round(row.confidence * 100)}%)"
    return label


def _render_tagger(services: Services, photo: Photo, rows: List[TaggerFace]) -> None:
    if not rows:
        st.info("Лица на фото не найдены. Людей можно добавить вручную.")
        return

    members = services.family.list_members()
    names = {m.id: m.name for m in members}
    options = ["", NEW_MEMBER] + [m.id for m in members]

    with st.form(f"tagger_{photo.id}"):
        edited: List[TaggerFace] = []
        for row in rows:
            thumb_col, pick_col = st.columns([1, 4])
            thumb = data_url_bytes(row.thumbnail)
            if thumb:
                thumb_col.image(thumb, width=80)
            selected = pick_col.selectbox(
                "Кто это?",
                options,
                index=options.index(row.selected_id) if row.selected_id in options else 0,
                format_func=lambda o, r=row: _member_option_label(o, names, r),
                key=f"tagger_pick_{photo.id}_{row.face_id}",
            )
            new_name = pick_col.text_input(
                "Имя нового человека",
                key=f"tagger_name_{photo.id}_{row.face_id}",
            )
            edited.append(replace(row, selected_id=selected, new_name=new_name))

        if st.form_submit_button("Сохранить отметки"):
            if _attempt("Сохранение отметок", services.tagging.save_tagger, photo, edited) is not None:
                st.session_state["tagger_rows"].pop(photo.id, None)
                st.rerun()


def _render_photo_detail(services: Services, previews: PhotoPreviews, photo: Photo) -> None:
    st.subheader(photo.name or "Фото")
    data = _attempt("Чтение фото", services.photos.photo_bytes, photo.id)
    if data:
        st.image(data, use_container_width=True)

    with st.form(f"caption_{photo.id}"):
        caption = st.text_input("Подпись", value=photo.caption)
        if st.form_submit_button("Сохранить подпись"):
            if _perform("Сохранение подписи", services.photos.update_caption, photo.id, caption):
                st.rerun()

    st.markdown("**Люди на фото**")
    for tag in photo.face_tags:
        name_col, remove_col = st.columns([4, 1])
        name_col.write(tag.member_name)
        if remove_col.button("Убрать", key=f"untag_{photo.id}_{tag.member_id}"):
            if _perform("Удаление отметки", services.tagging.remove_person, photo, tag.member_id):
                st.rerun()

    actions = st.columns(3)
    if actions[0].button("Кто на фото?", key=f"tagger_open_{photo.id}"):
        with st.spinner("Ищем лица…"):
            prepared = _attempt("Поиск лиц", services.tagging.prepare_tagger, photo)
        if prepared is not None:
            photo, rows = prepared
            st.session_state["tagger_rows"][photo.id] = rows

    if actions[1].button("Отметить по подсказкам", key=f"autotag_{photo.id}"):
        if photo.detected_faces:
            if _perform("Автоотметка", services.tagging.auto_apply_suggestions, photo):
                st.rerun()
        prepared = _attempt("Поиск лиц", services.tagging.prepare_tagger, photo)
        if prepared is not None:
            photo, rows = prepared
            st.session_state["tagger_rows"][photo.id] = rows

    if actions[2].button("Удалить фото", key=f"delete_{photo.id}"):
        if _perform("Удаление фото", services.photos.delete_photo, photo.id):
            st.session_state["open_photo_id"] = None
            previews.rebuild(services.photos.all_photos())
            st.rerun()

    rows = st.session_state["tagger_rows"].get(photo.id)
    if rows is not None:
        _render_tagger(services, photo, rows)

    tagged = {tag.member_id for tag in photo.face_tags}
    candidates = [m for m in services.family.list_members() if m.id not in tagged]
    if candidates:
        add_col, button_col = st.columns([4, 1])
        member = add_col.selectbox(
            "Добавить человека вручную",
            candidates,
            format_func=lambda m: m.name,
            key=f"manual_pick_{photo.id}",
        )
        if button_col.button("Добавить", key=f"manual_add_{photo.id}"):
            if _perform("Добавление человека", services.tagging.add_person_manual, photo, member.id):
                st.rerun()

    if st.button("← Назад к коллажу", key=f"close_{photo.id}"):
        st.session_state["open_photo_id"] = None
        st.rerun()


def _render_country_panel(services: Services, previews: PhotoPreviews, iso2: str) -> None:
    trip = services.trips.trip_by_iso(iso2)
    if trip is None:
        _select_country(None)
        return

    prev_code, next_code = services.trips.neighbours(iso2)
    nav = st.columns([1, 6, 1, 1])
    nav[0].button("←", disabled=prev_code is None, on_click=_select_country, args=(prev_code,), key="nav_prev")
    nav[1].header(f"{flag_emoji(iso2)} {country_name(iso2, trip.country_name)}")
    nav[2].button("→", disabled=next_code is None, on_click=_select_country, args=(next_code,), key="nav_next")
    nav[3].button("✕", on_click=_select_country, args=(None,), key="nav_close")
    st.caption(continent_name(trip.continent))

    open_id = st.session_state.get("open_photo_id")
    if open_id:
        photo = _attempt("Чтение фото", services.photos.get_photo, open_id)
        if photo is not None:
            _render_photo_detail(services, previews, photo)
            return
        st.session_state["open_photo_id"] = None

    _render_trip_editor(services, iso2)
    _render_uploader(services, previews, iso2)
    photos = _attempt("Загрузка фотографий", services.photos.photos_for_country, iso2) or []
    _render_collage(services, photos)

    with st.expander("Удалить страну"):
        st.warning("Страна исчезнет из списка. Фотографии останутся в архиве.")
        if st.button("Удалить", key=f"remove_country_{iso2}"):
            if _perform("Удаление страны", services.trips.remove_country, iso2):
                _select_country(None)
                st.rerun()


# ---------------------------------------------------------------------------
# Family manager
# ---------------------------------------------------------------------------


def _render_family_manager(services: Services) -> None:
    st.subheader("Семья")
    with st.form("add_member", clear_on_submit=True):
        name = st.text_input("Имя")
        if st.form_submit_button("Добавить") and name.strip():
            if _perform("Добавление человека", services.family.create_member, name):
                st.rerun()

    members = services.family.list_members()
    if not members:
        st.info("Пока никого нет. Добавьте людей здесь или прямо на фотографиях.")
        return

    photos = _attempt("Загрузка фотографий", services.photos.all_photos) or []
    appearances = member_appearances(photos)
    avatars = member_avatars(photos)

    for member in members:
        avatar_col, info_col, action_col = st.columns([1, 4, 2])
        avatar = data_url_bytes(avatars.get(member.id, ""))
        if avatar:
            avatar_col.image(avatar, width=64)
        else:
            avatar_col.write("👤")
        info_col.markdown(f"**{member.name}**")
        info_col.caption(f"Фотографий: {appearances.get(member.id, 0)}")
        with action_col.popover("Изменить"):
            new_name = st.text_input("Новое имя", value=member.name, key=f"rename_{member.id}")
            if st.button("Переименовать", key=f"rename_btn_{member.id}"):
                if _perform("Переименование", services.family.rename_member, member.id, new_name):
                    st.rerun()
            if st.button("Удалить", key=f"delete_member_{member.id}"):
                if _perform("Удаление человека", services.family.delete_member, member.id):
                    st.rerun()


def _render_export(services: Services) -> None:
    st.sidebar.divider()
    payload = _attempt("Экспорт данных", export_all_data, services.trips_store, services.photos)
    if payload is not None:
        st.sidebar.download_button(
            "Скачать данные (JSON)",
            payload,
            file_name="travel-map-export.json",
            mime="application/json",
        )


def main() -> None:
    _init_session()
    if not _password_gate():
        return

    services = load_services()
    if _attempt("Загрузка данных о поездках", services.trips.load) is None:
        return
    previews = _previews(services)

    _render_header(services)
    _render_country_list(services, previews)
    _render_export(services)

    map_tab, family_tab = st.tabs(["Карта", "Семья"])
    with map_tab:
        _render_map(services, previews)
        selected = st.session_state.get("selected_iso")
        if selected:
            _render_country_panel(services, previews, selected)
    with family_tab:
        _render_family_manager(services)


main()
