import os

import streamlit as st

from pdf_service.client import ConversionRequestError, convert_html

API_BASE = os.getenv("PDF_SERVICE_API_BASE", os.getenv("API_BASE", "http://localhost:8080")).rstrip("/")
API_TOKEN = os.getenv("PDF_SERVICE_TOKEN", os.getenv("TOKEN", "")) or None


def _reset_state():
    for key in ["pdf", "error"]:
        if key in st.session_state:
            del st.session_state[key]
    # Bump the uploader key to clear any previously uploaded file widget state
    st.session_state["upload_key"] = st.session_state.get("upload_key", 0) + 1


def main() -> None:
    st.set_page_config(page_title="HTML to PDF", page_icon="📄", layout="centered")
    st.title("📄 HTML to PDF")
    st.caption(f"API base: {API_BASE}")

    if st.button("Restart", type="secondary"):
        _reset_state()
        st.rerun()

    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload an HTML document",
        type=["html", "htm"],
        key=f"uploader-{st.session_state['upload_key']}",
    )
    pasted = st.text_area("…or paste HTML", height=200)

    html = uploaded.getvalue() if uploaded else pasted.encode("utf-8")
    if html and st.button("Convert", type="primary"):
        with st.spinner("Rendering..."):
            try:
                st.session_state["pdf"] = convert_html(html, api_base=API_BASE, token=API_TOKEN)
                st.session_state.pop("error", None)
            except ConversionRequestError as e:
                st.session_state["error"] = f"Conversion failed: {e}"

    if "pdf" in st.session_state:
        st.success("Conversion complete!")
        st.download_button(
            label="Download PDF",
            data=st.session_state["pdf"],
            file_name="document.pdf",
            mime="application/pdf",
        )

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
