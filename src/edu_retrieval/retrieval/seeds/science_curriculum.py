"""
Elementary science curriculum seed data.

A small grade 5-6 corpus (plus a few off-subject chunks) for local
development, the CLI and the retrieval golden set. In production, chunks
come from the PDF ingestion pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from edu_retrieval.retrieval.document import Document, DocumentMetadata

if TYPE_CHECKING:
    from edu_retrieval.retrieval.engine import RetrievalEngine

DEFAULT_COLLECTION = "grade6_science"


def _doc(doc_id: str, text: str, subject: str, grade: int, chapter: str, keywords: list[str]) -> Document:
    return Document(
        id=doc_id,
        text=text,
        metadata=DocumentMetadata(subject=subject, grade=grade, chapter=chapter, keywords=keywords),
    )


def get_science_documents() -> list[Document]:
    """Seed documents, one curriculum chunk each."""
    return [
        _doc(
            "sci6_gravity_01",
            "중력은 지구가 물체를 끌어당기는 힘입니다. 공을 위로 던지면 중력 때문에 다시 땅으로 떨어집니다. "
            "물체의 무게는 그 물체에 작용하는 중력의 크기입니다.",
            "과학", 6, "힘과 운동", ["중력", "무게"],
        ),
        _doc(
            "sci6_gravity_02",
            "달에서는 중력이 지구의 약 6분의 1이므로 같은 물체라도 달에서 잰 무게가 더 가볍습니다. "
            "질량은 장소가 바뀌어도 변하지 않습니다.",
            "과학", 6, "힘과 운동", ["중력", "질량"],
        ),
        _doc(
            "sci6_friction_01",
            "마찰력은 두 물체가 닿아 있는 면에서 물체의 운동을 방해하는 힘입니다. "
            "거친 면에서는 마찰력이 크고 매끄러운 면에서는 마찰력이 작습니다.",
            "과학", 6, "힘과 운동", ["마찰력"],
        ),
        _doc(
            "sci6_friction_02",
            "겨울철 빙판길에 모래를 뿌리면 마찰력이 커져서 덜 미끄러집니다. "
            "자전거 브레이크도 마찰력을 이용해 바퀴의 회전을 멈춥니다.",
            "과학", 6, "힘과 운동", ["마찰력", "브레이크"],
        ),
        _doc(
            "sci6_speed_01",
            "속력은 물체가 일정한 시간 동안 이동한 거리입니다. 속력은 이동 거리를 걸린 시간으로 나누어 구합니다.",
            "과학", 6, "물체의 운동", ["속력", "거리"],
        ),
        _doc(
            "sci6_light_01",
            "빛은 곧게 나아가다가 물이나 유리처럼 다른 물질을 만나면 경계에서 꺾입니다. "
            "이것을 빛의 굴절이라고 합니다.",
            "과학", 6, "빛과 렌즈", ["빛", "굴절"],
        ),
        _doc(
            "sci6_lens_01",
            "볼록 렌즈는 가운데가 가장자리보다 두꺼운 렌즈로, 빛을 한 점으로 모읍니다. "
            "돋보기와 현미경에 볼록 렌즈가 쓰입니다.",
            "과학", 6, "빛과 렌즈", ["볼록렌즈", "빛"],
        ),
        _doc(
            "sci6_circuit_01",
            "전기 회로에서 전지 두 개를 직렬로 연결하면 전구의 밝기가 밝아지고, 병렬로 연결하면 더 오래 켜집니다.",
            "과학", 6, "전기의 이용", ["전기회로", "전지"],
        ),
        _doc(
            "sci6_electromagnet_01",
            "전선에 전류가 흐르면 주변에 자기장이 생깁니다. 철심에 전선을 감아 전류를 흘리면 전자석이 됩니다.",
            "과학", 6, "전기의 이용", ["전자석", "전류"],
        ),
        _doc(
            "sci5_weather_01",
            "습도는 공기 중에 수증기가 포함된 정도입니다. 건습구 습도계로 습도를 측정할 수 있습니다.",
            "과학", 5, "날씨와 우리 생활", ["습도", "날씨"],
        ),
        _doc(
            "sci5_plant_01",
            "식물의 잎에서는 빛을 이용해 양분을 만드는 광합성이 일어납니다. 뿌리는 물을 흡수하고 줄기는 물을 운반합니다.",
            "과학", 5, "식물의 구조와 기능", ["광합성", "식물"],
        ),
        _doc(
            "math6_ratio_01",
            "비율은 기준량에 대한 비교하는 양의 크기입니다. 비율에 100을 곱하면 백분율이 됩니다.",
            "수학", 6, "비와 비율", ["비율", "백분율"],
        ),
        _doc(
            "math6_speed_01",
            "걸린 시간과 이동 거리를 알면 비율로 빠르기를 나타낼 수 있습니다. 이를 속력이라고 합니다.",
            "수학", 6, "비와 비율", ["속력", "비율"],
        ),
    ]


def seed_index(engine: RetrievalEngine, collection: str = DEFAULT_COLLECTION) -> int:
    """
    Ingest the seed documents into a collection.

    Args:
        engine: Engine whose index and embedding provider to use
        collection: Target collection

    Returns:
        Number of documents written
    """
    return engine.ingest(collection, get_science_documents())
