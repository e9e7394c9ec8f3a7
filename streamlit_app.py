# streamlit_app.py
import base64
import time
import json
import requests
import pandas as pd
import streamlit as st

from dbchat.crypto import default_codec
from dbchat.engines import DatabaseType

# ---------- Page setup ----------
st.set_page_config(page_title="AI Database Assistant", layout="wide")

# Helper classes used by the st.markdown snippets below
st.markdown("""
    <style>
    .small-muted {color:#64748b; font-size:0.85rem;}
    .section-title {font-weight:600; font-size:1.1rem; margin:0.75rem 0 0.25rem;}
    .hr {border-top:1px solid #cbd5e1; margin:1rem 0;}
    </style>
""", unsafe_allow_html=True)

# ---------- Session state ----------
if "history" not in st.session_state:
    st.session_state.history = []  # {question, data, ms, ok, error}
if "connection_id" not in st.session_state:
    st.session_state.connection_id = None

codec = default_codec()

# ---------- Sidebar ----------
with st.sidebar:
    st.header("Settings")
    api_url = st.text_input("API base URL", value="http://127.0.0.1:8000")
    show_sql = st.checkbox("Show generated SQL", value=True)
    enable_csv = st.checkbox("Enable CSV download", value=True)
    st.markdown("<div class='small-muted'>The API should be running via <code>uvicorn dbchat.main:app</code>.</div>", unsafe_allow_html=True)

    st.header("Database")
    with st.form("db_config"):
        db_type = st.selectbox("Type", [t.value for t in DatabaseType])
        host = st.text_input("Host", value="localhost")
        port = st.text_input("Port", value=str(DatabaseType(db_type).spec.default_port))
        database = st.text_input("Database")
        username = st.text_input("Username")
        password = st.text_input("Password", type="password")
        c1, c2 = st.columns(2)
        test_clicked = c1.form_submit_button("Test")
        connect_clicked = c2.form_submit_button("Connect", type="primary")

    if test_clicked or connect_clicked:
        # Only the encrypted secret ever leaves the browser session
        payload = {
            "type": db_type,
            "host": host.strip(),
            "port": port.strip(),
            "database": database.strip(),
            "username": username.strip(),
            "encryptedSecret": codec.encrypt(password) if password else "",
        }
        endpoint = "/api/test-connection" if test_clicked else "/api/create-connection"
        try:
            r = requests.post(api_url.rstrip("/") + endpoint, json=payload, timeout=30)
            data = r.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            data = {"success": False, "message": str(e)}
        if data.get("success"):
            st.success(data.get("message", "OK"))
            if connect_clicked:
                st.session_state.connection_id = data["connectionId"]
        else:
            st.error(data.get("message", "Connection failed"))

    if st.session_state.connection_id:
        st.markdown(f"<div class='small-muted'>Connected: <code>{st.session_state.connection_id}</code></div>", unsafe_allow_html=True)
        if st.button("Disconnect"):
            try:
                requests.delete(api_url.rstrip("/") + f"/api/connections/{st.session_state.connection_id}", timeout=30)
            except requests.exceptions.RequestException as e:
                st.warning(str(e))
            st.session_state.connection_id = None

# ---------- Header ----------
st.title("AI Database Assistant")
st.markdown("<div class='small-muted'>Ask a question in English. The system will generate SQL, run it read-only against the selected database and summarize the result.</div>", unsafe_allow_html=True)

# ---------- Input row ----------
col_q, col_chart, col_btn = st.columns([4, 1, 1])
with col_q:
    question = st.text_input("Question", value="", placeholder="e.g., Show total orders per city as a bar chart")
with col_chart:
    enable_chart = st.checkbox("Enable chart", value=True)
with col_btn:
    run_clicked = st.button("Ask", type="primary", use_container_width=True)


def call_backend(api: str, q: str, chart: bool, connection_id):
    t0 = time.perf_counter()
    url = api.rstrip("/") + "/api/query"
    body = {"prompt": q.strip(), "enableChart": chart}
    if connection_id:
        body["connectionId"] = connection_id
    try:
        r = requests.post(url, json=body, timeout=180)
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        try:
            data = r.json()
        except ValueError:
            return False, {}, elapsed_ms, r.text
        if r.status_code == 200 and "error" not in data:
            return True, data, elapsed_ms, None
        return False, data, elapsed_ms, data.get("error") or data.get("detail")
    except requests.exceptions.RequestException as e:
        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        return False, {}, elapsed_ms, str(e)


def to_frame(row_data):
    # First row is the header; a single-cell row is an error sentinel
    if not row_data or len(row_data) < 2:
        return pd.DataFrame()
    return pd.DataFrame(row_data[1:], columns=row_data[0])


def render_result(item, expanded=True):
    data = item["data"]
    if item["ok"]:
        st.markdown("<div class='section-title'>Summary</div>", unsafe_allow_html=True)
        st.markdown(data.get("summary", ""))
        if data.get("warning"):
            st.warning(data["warning"])
        if show_sql and data.get("query"):
            st.markdown("<div class='section-title'>Generated SQL</div>", unsafe_allow_html=True)
            st.code(data["query"], language="sql")
        rows = data.get("rowData") or []
        if len(rows) == 1 and len(rows[0]) == 1 and str(rows[0][0]).startswith("SQL Error"):
            st.error(rows[0][0])
        df = to_frame(rows)
        if not df.empty:
            st.dataframe(df, use_container_width=True, height=420 if expanded else 260)
            if enable_csv and expanded:
                csv = df.to_csv(index=False).encode("utf-8")
                st.download_button("Download CSV", data=csv, file_name="result.csv", mime="text/csv")
        elif data.get("query"):
            st.info("No rows returned.")
        if data.get("chartImage"):
            st.image(base64.b64decode(data["chartImage"]), caption=data.get("chartType", ""))
        elif data.get("chartImageError"):
            st.markdown(f"<div class='small-muted'>Chart unavailable: {data['chartImageError']}</div>", unsafe_allow_html=True)
    else:
        st.error("The request did not succeed.")
        st.markdown("<div class='section-title'>Details</div>", unsafe_allow_html=True)
        if isinstance(item["error"], (dict, list)):
            st.code(json.dumps(item["error"], indent=2))
        else:
            st.code(str(item["error"]))


# ---------- Execute ----------
if run_clicked and question.strip():
    with st.spinner("Thinking…"):
        ok, data, ms, err = call_backend(api_url, question, enable_chart, st.session_state.connection_id)

    st.session_state.history.insert(0, {
        "question": question,
        "data": data,
        "ms": ms,
        "ok": ok,
        "error": err
    })

# ---------- Latest result ----------
if st.session_state.history:
    latest = st.session_state.history[0]
    st.subheader("Result")
    st.markdown(f"<div class='small-muted'>Request finished in {latest['ms']} ms</div>", unsafe_allow_html=True)
    render_result(latest)
    st.markdown("<div class='hr'></div>", unsafe_allow_html=True)

# ---------- History ----------
st.subheader("History")
if not st.session_state.history:
    st.markdown("<div class='small-muted'>Your recent questions will appear here.</div>", unsafe_allow_html=True)
else:
    for i, item in enumerate(st.session_state.history):
        with st.expander(f"{i+1}. {item['question']}  •  {item['ms']} ms"):
            render_result(item, expanded=False)
