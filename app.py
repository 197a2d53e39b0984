import streamlit as st

from grade_vision.aggregate import add_result, aggregate, edit_grade, overall_cgpa, remove_result
from grade_vision.config import configure_logging, load_settings
from grade_vision.descent import (
    DescentEngine,
    initial_state,
    is_terminal,
    pending_question,
    settle,
    to_result,
    transition,
)
from grade_vision.io_csv import (
    decode_result,
    encode_result,
    make_subject,
    parse_subjects,
    read_csv_upload,
    results_to_frame,
    validate_subjects_csv,
)
from grade_vision.ladder import GRADE_LADDER
from grade_vision.oracle import GeminiConfidenceOracle

# ------------------------
# Streamlit UI
# ------------------------

settings = load_settings()
configure_logging(settings.log_level)

st.set_page_config(
    page_title="Grade Vision | SGPA Estimator",
    page_icon="🎓",
    layout="wide",
)

st.title("🎓 Grade Vision: SGPA Estimator")
st.write(
    "Enter each subject's CIE marks (out of 50) and credits. For every grade, from O "
    "downwards, you will be asked whether you are confident of scoring the SEE marks "
    "that grade needs. Your SGPA is estimated from the grades you confirm."
)

if "results" not in st.session_state:
    st.session_state["results"] = []
    # a shared link carries a whole result set
    shared = st.query_params.get("data")
    if shared:
        try:
            st.session_state["results"] = list(decode_result(shared).per_subject)
        except ValueError as e:
            st.error(f"Could not load shared results: {e}")

if "assessment" not in st.session_state:
    st.session_state["assessment"] = None


def commit(result):
    st.session_state["results"] = add_result(st.session_state["results"], result)
    st.session_state["assessment"] = None


def answer(confident: bool):
    subject, state = st.session_state["assessment"]
    state = transition(state, subject, confident, auto_commit_secured=settings.auto_commit_secured)
    if is_terminal(state):
        commit(to_result(state, subject))
    else:
        st.session_state["assessment"] = (subject, state)


# ------------------------
# Input form
# ------------------------

with st.form("subject_form", clear_on_submit=True):
    st.subheader("1. Add a subject")
    c1, c2, c3 = st.columns([3, 2, 2])
    with c1:
        name = st.text_input("Subject name", placeholder="e.g., Mathematics")
    with c2:
        cie = st.number_input("CIE marks", min_value=0.0, max_value=50.0, step=1.0, value=None)
    with c3:
        credits = st.number_input("Credits", min_value=0.5, max_value=10.0, step=0.5, value=None)

    use_ai = st.checkbox(
        "Let AI judge my confidence",
        value=False,
        disabled=not settings.has_ai,
        help=None if settings.has_ai else "Set GEMINI_API_KEY to enable AI assessment.",
    )
    submitted = st.form_submit_button(
        "Add & assess subject",
        type="primary",
        disabled=st.session_state["assessment"] is not None,
    )

if submitted:
    try:
        subject = make_subject(name, cie, credits)
    except ValueError as e:
        st.error(str(e))
    else:
        if use_ai:
            engine = DescentEngine(
                GeminiConfidenceOracle(settings.gemini_api_key, settings.gemini_model, settings.temperature),
                retries=settings.oracle_retries,
                auto_commit_secured=settings.auto_commit_secured,
            )
            with st.spinner(f"Assessing {subject.name}..."):
                commit(engine.assess(subject))
        else:
            state = settle(initial_state(), subject, auto_commit_secured=settings.auto_commit_secured)
            if is_terminal(state):
                commit(to_result(state, subject))
            else:
                st.session_state["assessment"] = (subject, state)

with st.expander("Or upload several subjects as CSV (Subject, CIE, Credits)"):
    subjects_csv = st.file_uploader("Subjects CSV", type=["csv"], key="subjects_csv")
    if subjects_csv is not None and st.button("Assess uploaded subjects", disabled=not settings.has_ai):
        try:
            subjects = parse_subjects(validate_subjects_csv(read_csv_upload(subjects_csv)))
        except Exception as e:
            st.error(f"Subjects CSV error: {e}")
        else:
            engine = DescentEngine(
                GeminiConfidenceOracle(settings.gemini_api_key, settings.gemini_model, settings.temperature),
                retries=settings.oracle_retries,
                auto_commit_secured=settings.auto_commit_secured,
            )
            with st.spinner(f"Assessing {len(subjects)} subjects..."):
                for result in engine.assess_all(subjects, max_workers=settings.max_workers):
                    st.session_state["results"] = add_result(st.session_state["results"], result)
    if not settings.has_ai:
        st.caption("Batch assessment needs AI mode (set GEMINI_API_KEY).")


# ------------------------
# Confidence check
# ------------------------

if st.session_state["assessment"] is not None:
    subject, state = st.session_state["assessment"]
    question = pending_question(state, subject)

    st.markdown("---")
    st.subheader(f"Confidence check: {question.subject_name}")
    text = (
        f"To get an **{question.tier_name}** grade, you need at least "
        f"**{question.required_exam_marks}** marks in the SEE"
    )
    if question.out_of_fifty is not None:
        text += f" (i.e., **~{question.out_of_fifty:.1f}** out of 50)"
    st.markdown(text + ".  \nAre you confident you can score this?")

    b1, b2, _ = st.columns([1, 1, 4])
    with b1:
        st.button("Not confident", on_click=answer, args=(False,))
    with b2:
        st.button("Confident", type="primary", on_click=answer, args=(True,))


# ------------------------
# Results
# ------------------------

results = st.session_state["results"]
if results:
    summary = aggregate(results)

    st.markdown("---")
    head, reset = st.columns([6, 1])
    with head:
        st.subheader("2. Estimated SGPA & results")
    with reset:
        if st.button("Start over"):
            st.session_state["results"] = []
            st.session_state["assessment"] = None
            st.query_params.clear()
            st.rerun()

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Estimated SGPA", f"{summary.average:.2f}")
    with col2:
        previous = st.text_input("Previous CGPA (optional)", placeholder="e.g., 8.5")
        combined = overall_cgpa(previous, summary.average) if previous else None
        if previous and combined is None:
            st.caption("Previous CGPA must be a number between 0 and 10.")
        st.metric("Overall CGPA", f"{combined:.2f}" if combined is not None else "N/A")

    if summary.has_at_risk:
        st.error(
            "📉 One or more subjects were marked as at risk or failed. "
            "They have been excluded from the SGPA calculation."
        )

    frame = results_to_frame(summary)
    st.dataframe(frame, use_container_width=True, hide_index=True)
    st.download_button(
        "Download results CSV",
        frame.to_csv(index=False).encode("utf-8"),
        file_name="grade_vision_results.csv",
        mime="text/csv",
    )

    st.markdown("**Edit or remove a subject**")
    e1, e2, e3, e4 = st.columns([3, 2, 1, 1])
    with e1:
        index = st.selectbox(
            "Subject",
            range(len(results)),
            format_func=lambda i: f"{i + 1}. {results[i].subject_name} ({results[i].committed_tier})",
        )
    with e2:
        names = [t.name for t in GRADE_LADDER]
        new_grade = st.selectbox(
            "New grade",
            names,
            index=names.index(results[index].committed_tier),
            format_func=lambda n: f"{n} (GP: {next(t.grade_point for t in GRADE_LADDER if t.name == n)})",
        )
    with e3:
        if st.button("Save grade"):
            st.session_state["results"] = edit_grade(results, index, new_grade)
            st.rerun()
    with e4:
        if st.button("Remove"):
            st.session_state["results"] = remove_result(results, index)
            st.rerun()

    if st.button("Create shareable link"):
        st.query_params["data"] = encode_result(summary)
        st.caption("The page address now contains your results.")
else:
    st.info("Add a subject and answer the confidence questions to get started.")
