import requests
import streamlit as st

from pdf_service.client import (
    API_BASE,
    ArchiveDownloadError,
    FileStatus,
    UploadQueue,
    format_file_size,
)

STATUS_ICONS = {
    FileStatus.QUEUED: "🕒",
    FileStatus.PROCESSING: "⏳",
    FileStatus.COMPLETED: "✅",
    FileStatus.FAILED: "❌",
    FileStatus.CANCELLED: "🚫",
}


def _queue() -> UploadQueue:
    if "queue" not in st.session_state:
        st.session_state["queue"] = UploadQueue(API_BASE)
    return st.session_state["queue"]


def _notify(message: str, icon: str | None = None) -> None:
    # Toasts are queued so they survive st.rerun()
    st.session_state.setdefault("notices", []).append((message, icon))


def _flush_notices() -> None:
    for message, icon in st.session_state.pop("notices", []):
        st.toast(message, icon=icon)


def _render_files(queue: UploadQueue) -> None:
    for f in queue.files:
        cols = st.columns([6, 2, 2])
        with cols[0]:
            st.write(f"{STATUS_ICONS.get(f.status, '')} **{f.name}** · {format_file_size(f.size)}")
            if f.status == FileStatus.PROCESSING:
                st.progress(f.progress)
            if f.error:
                st.caption(f":red[{f.error}]")
        with cols[1]:
            st.write(f.status)
        with cols[2]:
            if f.status in {FileStatus.QUEUED, FileStatus.PROCESSING}:
                if st.button("Cancel", key=f"cancel-{f.id}"):
                    queue.cancel(f.id)
                    _notify("The file conversion was cancelled.")
                    st.rerun()
            elif f.status != FileStatus.COMPLETED:
                if st.button("Remove", key=f"remove-{f.id}"):
                    queue.remove(f.id)
                    st.rerun()


def main() -> None:
    st.set_page_config(page_title="Document to PDF Converter", page_icon="📄", layout="centered")
    st.title("📄 Document to PDF Converter")
    st.caption(f"API base: {API_BASE}")

    queue = _queue()
    _flush_notices()

    # Bump the uploader key after each intake so the widget starts empty again
    if "upload_key" not in st.session_state:
        st.session_state["upload_key"] = 0
    uploaded = st.file_uploader(
        "Upload PowerPoint or Word documents",
        type=["ppt", "pptx", "doc", "docx"],  # type: ignore[arg-type]
        accept_multiple_files=True,
        key=f"uploader-{st.session_state['upload_key']}",
    )
    if uploaded:
        before = len(queue.files)
        for warning in queue.add_files(uploaded):
            _notify(warning, icon="⚠️")
        added = len(queue.files) - before
        if added:
            _notify(f"{added} file{'s' if added > 1 else ''} added to the queue.", icon="✅")
        st.session_state["upload_key"] += 1
        st.rerun()

    _render_files(queue)

    col1, col2 = st.columns([1, 1])
    with col1:
        convert = st.button("Convert All", type="primary", disabled=not queue.files)
    with col2:
        if st.button("Clear All", type="secondary", disabled=not queue.files):
            queue.clear_all()
            _notify("All uploaded files have been removed from the queue.")
            st.rerun()

    if convert:
        if not any(f.status == FileStatus.QUEUED for f in queue.files):
            st.toast("No files to convert. Please upload files first.", icon="⚠️")
        else:
            with st.spinner("Converting..."):
                summary = queue.submit_all()
            for f in queue.files:
                if f.status == FileStatus.FAILED:
                    _notify(f"Failed to convert {f.name}. {f.error}", icon="❌")
            _notify(
                f"All files have been processed: {summary.succeeded} succeeded, {summary.failed} failed.",
                icon="✅",
            )
            st.session_state.pop("zip_bytes", None)
            st.rerun()

    converted = queue.converted
    if converted:
        st.subheader("Converted files")
        for c in converted:
            cols = st.columns([6, 2])
            with cols[0]:
                st.write(f"**{c.name}** · {c.date_converted:%b %d, %Y} · {format_file_size(c.size)}")
            with cols[1]:
                try:
                    data = queue.download_file(c)
                except requests.RequestException as e:
                    st.caption(f":red[{e}]")
                else:
                    st.download_button("Download", data=data, file_name=c.name, mime="application/pdf", key=f"dl-{c.id}")

        if st.button("Prepare ZIP of all files"):
            try:
                st.session_state["zip_bytes"] = queue.download_zip()
            except ArchiveDownloadError as e:
                st.toast(str(e), icon="❌")
        if zip_bytes := st.session_state.get("zip_bytes"):
            st.download_button(
                label="Download All (ZIP)",
                data=zip_bytes,
                file_name="converted_pdfs.zip",
                mime="application/zip",
            )


if __name__ == "__main__":
    main()
