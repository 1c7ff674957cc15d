"""
医薬品カテゴリの表示ラベル (ポルトガル語)

カタログ・レポートで type をそのまま見せずにラベルへ変換する。
未登録のカテゴリはそのまま返す。
"""

MEDICINE_TYPE_LABELS = {
    "Analgesic": "Analgésico",
    "Antibiotic": "Antibiótico",
    "Antiallergic": "Antialérgico",
    "Gastric": "Gástrico",
    "Anti-inflammatory": "Anti-inflamatório",
    "Controlled": "Controlado",
    "Cardiovascular": "Cardiovascular",
    "Supplement": "Suplemento",
}


def get_medicine_type_label(medicine_type: str | None) -> str:
    if not medicine_type:
        return ""
    return MEDICINE_TYPE_LABELS.get(medicine_type, medicine_type)
