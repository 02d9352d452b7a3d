"""Soul Fruit System (Streamlit)

Presentation layer for the Soul-Soul Fruit toolkit.

Principles:
- UI only renders + triggers.
- Core formulas, SPU ledger and entity store are pure Python modules.
- Ability text is LLM-only (Gemini). If the LLM fails we show a clear error and nothing changes.

Entry point for Streamlit Cloud: app.py
"""

from __future__ import annotations

import os
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List

import streamlit as st

from content.providers.base import ProviderStatus
from content.providers.gemini import GeminiProvider
from content.schemas import request_from_mapping
from core.formulas import HOMIE_TYPES, buff_totals_for_target, describe_buff_total, domain_stats, next_buff_increment_cost
from core.modes import DEFAULT_MODES, get_mode_spec
from core.state import ABILITY_KEYS, HOMIE_TIER_KEYS, Ability, SoulFruitState
from engine.config import AppConfig
from engine.persistence import export_state, import_state
from engine.pipeline import SoulFruitSession, describe_capture

APP_TITLE = "Soul Fruit System"
APP_SUBTITLE = "Soul bank, boons, homies and domains for a Soru Soru no Mi user. (SPU economy + LLM ability cards)"
APP_VERSION = "1.0.0"

PANELS = {
    "1": "🧮 Soul Calculator",
    "2": "👻 Soul Bank",
    "3": "✨ Soul Boons",
    "4": "🏝️ Homies & Domains",
    "5": "📜 Abilities",
    "6": "📊 Summary",
}

st.set_page_config(page_title=APP_TITLE, page_icon="👻", layout="wide", initial_sidebar_state="expanded")

CSS = """
<style>
.block-container {padding-top: 3.2rem; padding-bottom: 2rem;}
section[data-testid="stSidebar"] .block-container {padding-top: 2.0rem;}
.card {
  border: 1px solid rgba(255,255,255,0.08);
  border-radius: 16px;
  padding: 14px 16px;
  background: rgba(255,255,255,0.03);
}
.pill {
  display: inline-block;
  padding: 2px 10px;
  border-radius: 999px;
  border: 1px solid rgba(255,255,255,0.12);
  font-size: 12px;
  opacity: .85;
}
.pill.ok {border-color: rgba(120,255,160,0.25);}
.pill.bad {border-color: rgba(255,120,120,0.25);}
.small {font-size: 13px; opacity:.75;}
hr.soft {border: none; border-top: 1px solid rgba(255,255,255,0.08); margin: 1rem 0;}
</style>
"""

st.markdown(CSS, unsafe_allow_html=True)


# =========================
# Helpers
# =========================


def _get_api_key() -> str:
    # Streamlit Cloud: st.secrets
    try:
        if "GEMINI_API_KEY" in st.secrets:
            return str(st.secrets["GEMINI_API_KEY"])  # type: ignore
    except FileNotFoundError:
        pass
    # Local
    return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or ""


def _config() -> AppConfig:
    return AppConfig.from_env().with_api_key(_get_api_key())


def _provider(cfg: AppConfig) -> GeminiProvider:
    return GeminiProvider.from_api_key_string(cfg.api_key, model=cfg.model)


def _session() -> SoulFruitSession:
    return st.session_state.session


def _state() -> SoulFruitState:
    return _session().state


def _flash(ok: bool, message: str) -> None:
    st.session_state.flash = (bool(ok), str(message or ""))


def _show_flash() -> None:
    flash = st.session_state.pop("flash", None)
    if not flash or not flash[1]:
        return
    ok, message = flash
    (st.success if ok else st.error)(message)


def _owner_label(a: Ability) -> str:
    ss = _session()
    if a.owner_kind == "homie":
        h = ss.store.get_homie(a.owner_id or "")
        return h.name if h else "General"
    if a.owner_kind == "domain":
        d = ss.store.get_domain(a.owner_id or "")
        return f"Domain: {d.name}" if d else "General"
    return "General"


def _owner_options() -> List[str]:
    st_ = _state()
    return ["General"] + [h.name for h in st_.homies] + [f"Domain: {d.name}" for d in st_.domains]


# =========================
# Session State
# =========================


def _ensure_state() -> None:
    ss = st.session_state
    if "session" not in ss:
        cfg = _config()
        ss.session = SoulFruitSession(cfg, provider=_provider(cfg))
    if "flash" not in ss:
        ss.flash = None


def _reset_all() -> None:
    _session().reset()
    _flash(True, "All data cleared.")


# =========================
# Panels
# =========================


def panel_calculator() -> None:
    ss = _session()
    st.caption("Rate a soul from its Power, Fear and Attachment, then bank it.")
    c1, c2, c3 = st.columns(3)
    with c1:
        power = st.number_input("Power (0-20)", min_value=0.0, max_value=20.0, value=10.0, step=1.0, key="calc_power")
    with c2:
        fear = st.number_input("Fear (0-10)", min_value=0.0, max_value=10.0, value=5.0, step=1.0, key="calc_fear")
    with c3:
        attachment = st.number_input("Attachment (0-10)", min_value=0.0, max_value=10.0, value=5.0, step=1.0, key="calc_attach")

    rating = ss.rate_soul(power, fear, attachment)
    m1, m2, m3 = st.columns(3)
    m1.metric("Soul Level", rating.soul_level)
    m2.metric("SPU", rating.spu)
    m3.metric("Overall", f"{rating.overall:.3f}")

    name = st.text_input("Soul name", key="calc_name")
    traits = st.text_area("Traits (one per line)", key="calc_traits", height=80)
    if st.button("Add soul to bank", key="calc_add"):
        soul = ss.add_soul(name, power, fear, attachment, traits_text=traits)
        _flash(True, f"Added {soul.name} (SL {soul.soul_level}, {soul.spu} SPU).")
        st.rerun()

    st.markdown("---")
    st.markdown("**Terror capture**")
    t1, t2, t3, t4 = st.columns(4)
    with t1:
        dc = st.number_input("Your Soul DC", min_value=1, max_value=40, value=int(_state().ui.last_dc or 15), key="cap_dc")
    with t2:
        save = st.number_input("Target save result", min_value=-10, max_value=50, value=10, key="cap_save")
    with t3:
        sl = st.number_input("Target Soul Level", min_value=1, max_value=10, value=5, key="cap_sl")
    with t4:
        d20 = st.number_input("d20 (0 = roll)", min_value=0, max_value=20, value=0, key="cap_d20")
    cap_name = st.text_input("Victim name", key="cap_name")
    if st.button("Resolve capture", key="cap_go"):
        roll = int(d20) or ss.roll_capture_d20(cap_name)
        result, soul = ss.capture_soul(cap_name, int(dc), int(save), roll, int(sl))
        _flash(*describe_capture(result, soul, roll))
        st.rerun()


def panel_soul_bank() -> None:
    ss = _session()
    souls = _state().souls
    if not souls:
        st.info("No souls banked yet.")
        return
    for soul in souls:
        with st.container():
            c1, c2, c3 = st.columns([3.0, 1.0, 1.0])
            with c1:
                origin = " · captured" if soul.origin == "capture" else ""
                st.markdown(f"**{soul.name}**  <span class='pill'>SL {soul.soul_level}</span> <span class='pill'>{soul.spu} SPU</span>{origin}", unsafe_allow_html=True)
            with c2:
                active = st.checkbox("Active", value=soul.active, key=f"soul_active_{soul.id}")
                if active != soul.active:
                    ss.set_soul_active(soul.id, active)
                    st.rerun()
            with c3:
                if st.button("Delete", key=f"soul_del_{soul.id}"):
                    ss.delete_soul(soul.id)
                    st.rerun()
            traits = st.text_area("Traits", value=soul.traits_text, key=f"soul_traits_{soul.id}", height=68)
            if traits != soul.traits_text:
                ss.set_soul_traits(soul.id, traits)


def panel_boons() -> None:
    ss = _session()
    state = _state()
    targets = list(state.buff_targets.values())
    ids = [t.id for t in targets]
    cur = state.ui.current_buff_target_id
    ix = ids.index(cur) if cur in ids else 0

    c1, c2 = st.columns([2.0, 1.0])
    with c1:
        picked = st.selectbox("Target", ids, index=ix, format_func=lambda i: f"{state.buff_targets[i].name} ({state.buff_targets[i].type})")
        if picked != cur:
            ss.select_target(picked)
            st.rerun()
    with c2:
        ally = st.text_input("New ally", key="ally_name")
        if st.button("Add ally", key="ally_add"):
            if ss.add_ally(ally) is None:
                _flash(False, "Ally needs a name.")
            st.rerun()

    target = state.buff_targets[picked]
    for buff in state.buffs_catalog.values():
        count = int(target.buffs.get(buff.id, 0))
        b1, b2, b3, b4 = st.columns([3.0, 0.6, 0.6, 1.4])
        with b1:
            st.markdown(f"**{buff.name}** <span class='small'>({buff.category}, base {buff.base_cost})</span>", unsafe_allow_html=True)
            st.caption(buff.description)
        with b2:
            if st.button("−", key=f"buff_dec_{target.id}_{buff.id}", disabled=count <= 0):
                ss.adjust_buffs(target.id, buff.id, -1)
                st.rerun()
        with b3:
            if st.button("+", key=f"buff_inc_{target.id}_{buff.id}"):
                res = ss.adjust_buffs(target.id, buff.id, 1)
                if not res.ok:
                    _flash(False, res.message)
                st.rerun()
        with b4:
            st.markdown(f"x{count} · next {next_buff_increment_cost(buff.base_cost, count)} SPU")
            if count:
                st.caption(describe_buff_total(buff, count))

    totals = buff_totals_for_target(target, state.buffs_catalog)
    with st.expander("Totals on this target"):
        st.json(asdict(totals))

    views = ["hide", "custom", "dc", "both"]
    view = st.radio("Tools", views, index=views.index(state.ui.buff_tools_view) if state.ui.buff_tools_view in views else 0, horizontal=True)
    state.ui.buff_tools_view = view
    if view in {"custom", "both"}:
        n1, n2 = st.columns([2.0, 1.0])
        with n1:
            cname = st.text_input("Custom boon name", key="custom_name")
            cdesc = st.text_input("Description", key="custom_desc")
        with n2:
            ccost = st.number_input("Base cost", min_value=0, value=20, key="custom_cost")
        if st.button("Add custom boon", key="custom_add"):
            if ss.add_custom_buff(cname, int(ccost), cdesc) is None:
                _flash(False, "Custom boons need a name and a positive cost.")
            st.rerun()
    if view in {"dc", "both"}:
        d1, d2, d3 = st.columns(3)
        with d1:
            prof = st.number_input("Proficiency bonus", min_value=0, max_value=10, value=2, key="dc_prof")
        with d2:
            mod = st.number_input("Ability modifier", min_value=-5, max_value=10, value=3, key="dc_mod")
        with d3:
            sl = st.number_input("Your Soul Level", min_value=0, max_value=10, value=5, key="dc_sl")
        if st.button("Calculate DC", key="dc_go"):
            ss.calc_dc(int(prof), int(mod), int(sl))
            st.rerun()
        if state.ui.last_dc is not None:
            st.metric("Soul DC", state.ui.last_dc)


def _homie_card(homie_id: str) -> None:
    ss = _session()
    homie = ss.store.get_homie(homie_id)
    if homie is None:
        return
    st.markdown(f"**{homie.name}** <span class='pill'>{homie.homie_type}</span> <span class='pill'>{homie.status}</span>", unsafe_allow_html=True)
    if homie.tiers:
        ts = ss.homie_tier_stats(homie.id)
        st.caption(f"HP {ts.hp} · AC {ts.ac} · damage tier {ts.damage_tier} · utility tier {ts.utility_tier} · invested {homie.total_spu_invested} SPU")
        cols = st.columns(len(HOMIE_TIER_KEYS))
        for col, key in zip(cols, HOMIE_TIER_KEYS):
            with col:
                st.markdown(f"{key}: {homie.tiers.get(key, 0)}")
                if st.button("+", key=f"tier_up_{homie.id}_{key}"):
                    res = ss.raise_homie_tier(homie.id, key)
                    if not res.ok:
                        _flash(False, res.message)
                    st.rerun()
                if st.button("−", key=f"tier_dn_{homie.id}_{key}"):
                    res = ss.lower_homie_tier(homie.id, key)
                    if res.ok:
                        _flash(True, f"Refunded {-res.amount} SPU.")
                    st.rerun()
    else:
        s = homie.stats
        st.caption(f"{homie.body} · {homie.element} · AC {s.ac} · HP {s.hp} · speed {s.speed} ft · attack +{s.attack_bonus}")
        st.caption(" · ".join(f"{k} {getattr(s, k)}" for k in ABILITY_KEYS))
        if homie.inherited_traits:
            st.caption("Inherited: " + "; ".join(homie.inherited_traits))
    c1, c2 = st.columns(2)
    with c1:
        status = "defeated" if homie.status == "active" else "active"
        if st.button(f"Mark {status}", key=f"homie_status_{homie.id}"):
            ss.set_homie_status(homie.id, status)
            st.rerun()
    with c2:
        if st.button("Delete homie", key=f"homie_del_{homie.id}"):
            ss.delete_homie(homie.id)
            st.rerun()


def panel_homies_domains() -> None:
    ss = _session()
    state = _state()

    st.markdown("**Soul-powered homie** (same name re-rolls that homie)")
    h1, h2, h3, h4 = st.columns(4)
    with h1:
        hname = st.text_input("Name", key="homie_name")
    with h2:
        hbody = st.text_input("Body", key="homie_body")
    with h3:
        helem = st.text_input("Element", key="homie_elem")
    with h4:
        hdur = st.slider("Durability", min_value=1, max_value=20, value=10, key="homie_dur")
    mode = st.radio("Souls", ["active", "all", "selected"], horizontal=True, key="homie_soul_mode")
    selected: List[str] = []
    if mode == "selected":
        selected = st.multiselect("Pick souls", [s.id for s in state.souls], format_func=lambda i: ss.store.get_soul(i).name, key="homie_souls")
    if st.button("Generate homie", key="homie_go"):
        homie = ss.generate_homie(hname, hbody, int(hdur), helem, soul_mode=mode, selected_ids=selected)
        _flash(True, f"{homie.name}: AC {homie.stats.ac}, HP {homie.stats.hp}.")
        st.rerun()

    st.markdown("---")
    st.markdown("**Bought homie** (paid with SPU, raised by tiers)")
    b1, b2 = st.columns(2)
    with b1:
        bname = st.text_input("Name", key="buy_name")
    with b2:
        btype = st.selectbox("Type", list(HOMIE_TYPES.keys()), format_func=lambda k: f"{HOMIE_TYPES[k].label} ({HOMIE_TYPES[k].base_cost} SPU)", key="buy_type")
    if st.button("Buy homie", key="buy_go"):
        res = ss.buy_homie(bname, btype)
        _flash(res.ok, res.message or "Homie created.")
        st.rerun()

    for homie in list(state.homies):
        with st.container():
            st.markdown("<hr class='soft'/>", unsafe_allow_html=True)
            _homie_card(homie.id)

    st.markdown("---")
    st.markdown("**Domains**")
    d1, d2 = st.columns([2.0, 1.0])
    with d1:
        dname = st.text_input("Domain name", key="dom_name")
    with d2:
        dtier = st.number_input("Tier", min_value=1, max_value=10, value=1, key="dom_tier")
    if st.button("Found domain", key="dom_go"):
        res = ss.found_domain(dname, int(dtier))
        _flash(res.ok, res.message or f"Domain founded for {res.amount} SPU.")
        st.rerun()

    for domain in list(state.domains):
        ds = domain_stats(domain.tier)
        with st.expander(f"{domain.name} · Tier {domain.tier}"):
            st.caption(f"Range {ds.control_range_ft} ft · fear DC {ds.passive_fear_dc} · {ds.size} · invested {domain.spu_invested} SPU")
            st.markdown(ds.lair_actions)
            new_tier = st.number_input("Set tier", min_value=1, max_value=10, value=int(domain.tier), key=f"dom_set_{domain.id}")
            if int(new_tier) != domain.tier:
                res = ss.set_domain_tier(domain.id, int(new_tier))
                if not res.ok:
                    _flash(False, res.message)
                st.rerun()
            free = [h for h in state.homies if h.domain_id != domain.id]
            if free:
                pick = st.selectbox("Bind homie", [h.id for h in free], format_func=lambda i: ss.store.get_homie(i).name, key=f"dom_bind_{domain.id}")
                if st.button("Bind", key=f"dom_bind_go_{domain.id}"):
                    ss.bind_homie(domain.id, pick)
                    st.rerun()
            for hid in list(domain.homie_ids):
                h = ss.store.get_homie(hid)
                if h and st.button(f"Unbind {h.name}", key=f"dom_unbind_{domain.id}_{hid}"):
                    ss.unbind_homie(domain.id, hid)
                    st.rerun()
            personality = st.text_area("Personality", value=domain.personality, key=f"dom_pers_{domain.id}", height=68)
            notes = st.text_area("Notes", value=domain.notes, key=f"dom_notes_{domain.id}", height=68)
            if personality != domain.personality or notes != domain.notes:
                ss.update_domain(domain.id, personality=personality, notes=notes)
            if st.button("Delete domain", key=f"dom_del_{domain.id}"):
                ss.delete_domain(domain.id)
                st.rerun()


def _generation_form() -> None:
    ss = _session()
    state = _state()
    mode_keys = list(DEFAULT_MODES.keys())
    mode = st.selectbox("Generation mode", mode_keys, format_func=lambda k: DEFAULT_MODES[k].label, key="gen_mode")
    spec = get_mode_spec(mode)
    st.caption(spec.desc)

    body: Dict[str, object] = {"mode": mode}
    if spec.needs_homie:
        if not state.homies:
            st.info("Create a homie first.")
            return
        body["homie_id"] = st.selectbox("Homie", [h.id for h in state.homies], format_func=lambda i: ss.store.get_homie(i).name, key="gen_homie")
        body["concept"] = st.text_area("Concept", key="gen_concept", height=68)
        body["effect_types"] = st.text_input("Effect types (comma separated)", key="gen_effects_h")
        body["power_level"] = st.slider("Power level", 1, 10, 5, key="gen_power_h")
    elif spec.needs_domain:
        if not state.domains:
            st.info("Found a domain first.")
            return
        body["domain_id"] = st.selectbox("Domain", [d.id for d in state.domains], format_func=lambda i: ss.store.get_domain(i).name, key="gen_domain")
    elif mode == "generic_ability":
        body["assign_to"] = st.selectbox("Assign to", _owner_options(), key="gen_assign")
        body["effect_types"] = st.text_input("Effect types (comma separated)", key="gen_effects")
        body["outcome_types"] = st.text_input("Outcome / shape (comma separated)", key="gen_outcomes")
        body["power_level"] = st.slider("Power level", 1, 10, 5, key="gen_power")
        body["soul_cost"] = st.number_input("Soul cost (SPU)", min_value=0, value=0, key="gen_cost")
    body["notes"] = st.text_area("Notes", key="gen_notes", height=68)

    ps = ss.provider.status() if ss.provider else ProviderStatus(False, "none", "")
    if st.button("Generate", key="gen_go", disabled=not ps.ok):
        with st.spinner("Asking Gemini..."):
            outcome = ss.generate_abilities(request_from_mapping(body))
        if outcome.ok:
            kind = "structured" if outcome.structured else "raw text"
            _flash(True, f"Added {len(outcome.abilities)} ability card(s) ({kind}).")
        else:
            _flash(False, f"Generation failed: {outcome.error}")
        st.rerun()


def panel_abilities() -> None:
    ss = _session()
    state = _state()
    _generation_form()

    st.markdown("---")
    if st.button("Add blank ability", key="ab_blank"):
        ss.add_empty_ability()
        st.rerun()

    options = _owner_options()
    for a in list(state.abilities):
        with st.expander(f"{a.name or 'Untitled'} · {_owner_label(a)}"):
            cur = _owner_label(a)
            owner = st.selectbox("Owner", options, index=options.index(cur) if cur in options else 0, key=f"ab_owner_{a.id}")
            if owner != cur:
                kind, oid = ss.store.resolve_owner("" if owner == "General" else owner)
                ss.update_ability(a.id, owner_kind=kind, owner_id=oid or "")
                st.rerun()
            changed: Dict[str, str] = {}
            for key, label in [
                ("name", "Name"),
                ("action_type", "Action type"),
                ("range", "Range"),
                ("target", "Target"),
                ("save_dc", "Save / DC"),
                ("damage", "Damage"),
            ]:
                v = st.text_input(label, value=getattr(a, key), key=f"ab_{key}_{a.id}")
                if v != getattr(a, key):
                    changed[key] = v
            for key, label in [("effect", "Effect"), ("combo", "Combo"), ("description", "Description")]:
                v = st.text_area(label, value=getattr(a, key), key=f"ab_{key}_{a.id}", height=80)
                if v != getattr(a, key):
                    changed[key] = v
            if changed:
                ss.update_ability(a.id, **changed)
            if st.button("Delete ability", key=f"ab_del_{a.id}"):
                ss.delete_ability(a.id)
                st.rerun()

    last = ss.last_generation
    if last is not None and last.raw:
        with st.expander("Last raw model output"):
            st.code(last.raw, language="json")


def panel_summary() -> None:
    ss = _session()
    state = _state()
    totals = ss.totals()
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Total SPU", totals.total)
    m2.metric("Spent", totals.spent)
    m3.metric("Available", totals.available)
    m4.metric("Active souls", sum(1 for s in state.souls if s.active))

    st.markdown(f"Homies: **{len(state.homies)}** · Domains: **{len(state.domains)}** · Abilities: **{len(state.abilities)}**")
    for target in state.buff_targets.values():
        lines = [describe_buff_total(state.buffs_catalog[b], n) for b, n in target.buffs.items() if b in state.buffs_catalog and n > 0]
        lines = [x for x in lines if x]
        if lines:
            st.markdown(f"**{target.name}**: " + " ".join(lines))


PANEL_RENDERERS = {
    "1": panel_calculator,
    "2": panel_soul_bank,
    "3": panel_boons,
    "4": panel_homies_domains,
    "5": panel_abilities,
    "6": panel_summary,
}


# =========================
# Sidebar
# =========================


def export_import_controls() -> None:
    ss = _session()
    st.sidebar.markdown("---")
    st.sidebar.markdown("### Export / Import")

    st.sidebar.download_button(
        "Download save file",
        data=export_state(ss.state).encode("utf-8"),
        file_name=f"soul_fruit_{datetime.utcnow().strftime('%Y%m%d%H%M%S')}.json",
        mime="application/json",
    )

    up = st.sidebar.file_uploader("Load save file", type=["json"], accept_multiple_files=False)
    if up is not None and st.sidebar.button("Import", use_container_width=True):
        try:
            ss.replace_state(import_state(up.read().decode("utf-8")))
            _flash(True, "Save file loaded.")
            st.rerun()
        except ValueError as e:
            st.sidebar.error(f"Import failed: {e}")


def sidebar() -> None:
    ss = _session()
    state = _state()

    st.sidebar.markdown(f"**{APP_TITLE}**  ")
    st.sidebar.markdown(f"v{APP_VERSION}")

    st.sidebar.markdown("---")
    totals = ss.totals()
    st.sidebar.markdown(f"SPU: **{totals.available}** available / {totals.total} total")

    ps = ss.provider.status() if ss.provider else ProviderStatus(False, "none", "")
    if ps.ok:
        st.sidebar.success(f"Gemini ready ({ps.backend} / {ps.model})")
    else:
        st.sidebar.error("Gemini not ready")
        st.sidebar.caption(ps.error or "Missing API key")

    st.sidebar.markdown("---")
    for key, label in PANELS.items():
        shown = st.sidebar.checkbox(label, value=not state.ui.collapsed_panels.get(key, False), key=f"panel_{key}")
        state.ui.collapsed_panels[key] = not shown

    cols = st.sidebar.columns(2)
    with cols[0]:
        if st.button("Save", use_container_width=True):
            ok = ss.save()
            _flash(ok, "Saved." if ok else "Save failed (see logs).")
            st.rerun()
    with cols[1]:
        if st.button("Reset", use_container_width=True):
            _reset_all()
            st.rerun()

    export_import_controls()


# =========================
# Main
# =========================


def main() -> None:
    _ensure_state()
    sidebar()

    st.title(APP_TITLE)
    st.caption(APP_SUBTITLE)
    _show_flash()

    ui = _state().ui
    for key, label in PANELS.items():
        if ui.collapsed_panels.get(key, False):
            continue
        st.subheader(label)
        with st.container():
            PANEL_RENDERERS[key]()


if __name__ == "__main__":
    main()
